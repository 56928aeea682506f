# chatlog

A library for working with chat history. It can:

- export messages to JSON or CSV files;
- report failures as structured errors that carry HTTP status codes;
- answer Model Context Protocol (MCP) requests that arrive over server-sent events (SSE).

The package has no dependencies outside the standard library.

## Install

```
pip install .
pip install ".[test]"   # adds pytest
```

## Exporting messages (`chatlog.export`)

```python
from chatlog.export import get_messages_for_export, export_messages

messages = get_messages_for_export(db, None, None, "", False, None)
export_messages(messages, "chatlog.json", "json", None)
```

### The database object

`get_messages_for_export(db, start_time, end_time, talker, only_self, progress)` reads from a `db` object that you supply. It calls two methods on it:

- `db.get_messages(start_time, end_time, talker, "", "", 0, 0)`. It returns a sequence of messages.
- `db.get_contacts("", 0, 0)`. It returns an object with an `items` list. Each contact in that list has a `user_name`.

### How the messages are selected

- **Time range.** If `start_time` is `None`, the export starts at 2010-01-01 UTC. If `end_time` is `None`, it ends now.
- **One talker.** If you pass a `talker`, only that talker's messages are fetched.
- **All contacts.** Otherwise every contact that has a `user_name` is read in turn.
  - A contact whose query fails is logged and skipped.
  - If there are no contacts, `ValueError` is raised.
  - If no messages are found, `ValueError` is raised.
- **Own messages.** If `only_self` is true, only messages with `is_self` set are kept. `filter_self_messages` does the same filtering on its own.
- **Progress.** If you pass `progress(current, total)`, it is called once for each contact.

### Message attributes

The exporter reads these attributes from each message:

- `seq`
- `time`, a `datetime`
- `talker` and `talker_name`
- `is_chat_room`
- `sender` and `sender_name`
- `is_self`
- `type` and `sub_type`
- `content`
- `contents`, optional

### Writing the file

`export_messages(messages, output_path, format, progress)` writes either format:

- `"json"` writes an indented JSON array. Times are written in RFC 3339 form.
- `"csv"` writes these columns: `Time, Talker, TalkerName, Sender, SenderName, IsSelf, Type, TypeDesc, Content`.

Any other format raises `ValueError`.

Every record carries a readable type description from `get_message_type_desc`. The numeric codes are listed in `MessageType` and `AppSubType`.

## Configuration (`chatlog.conf`)

`Config` holds two things:

- `last_account`
- a `history` list of `ProcessConfig` records, each with a list of `FileRecord` entries

It has these methods:

- `Config.from_dict` and `Config.to_dict` convert to and from the stored JSON form. `config_dir` is never stored.
- `Config.parse_history()` returns the history keyed by account. If an account appears twice, the later entry wins.
- `Config.update_history(account, conf)` replaces that account's entry, or appends a new one. It also sets `last_account`.

Reading and writing the configuration file is up to the caller.

## Errors (`chatlog.errors`)

`AppError` is an exception with these attributes:

- `message`
- `cause`
- `code`, an HTTP status
- `stack`, filled in by `with_stack()`

Its string form is `"message: cause"`. Functions such as `invalid_arg`, `talker_not_found` and `db_connect_failed` build common errors, and module constants such as `ERR_KEY_EMPTY` hold fixed ones.

These functions work with any exception:

- `wrap(err, message, code)` gives an error a new message. If `err` is an `AppError`, its cause, code and stack are kept.
- `get_code(err)` returns the status code:
  - 200 for `None`;
  - the code of the first `AppError` in the cause chain;
  - otherwise 500.
- `root_cause(err)` returns the innermost error of the chain.
- `error_response(err)` returns `(status, error text)`.
- `recovery_response(exc)` logs the failure and returns `(500, {"message": ...})`.

## MCP

### Protocol types (`chatlog.mcp.protocol`)

This module holds the JSON-RPC 2.0 and MCP message dataclasses, the `McpError` codes, and two helpers:

- `to_jsonable` converts an object to plain JSON values.
- `parse_params(cls, params)` decodes request params into a dataclass.

### Sessions (`chatlog.mcp.session`)

`MCP` keeps track of sessions and queues incoming requests.

- **Opening a session.** `open_session(stream)` creates a `Session` that writes SSE text to any object with `write(str)`, and `flush()` if the object has one. It first sends an `endpoint` event, then pings every 30 seconds. `close_session(id)` ends the session.
- **Queueing a request.** `handle_message(query, body, path_session_id)` takes the session id from `session_id`, then `sessionId`, then the path. It returns `(status, body)`:

  | Status | Meaning |
  |---|---|
  | 202 | Queued; the body is `"Accepted"` |
  | 400 | Missing session id, or a body that is not a valid request |
  | 404 | Unknown session |
  | 429 | 1000 requests are already waiting |

- **Taking requests.** `next_request(timeout)` returns the next queued item. It returns `None` on timeout, or once `close()` has been called and the queue is empty.

### Service (`chatlog.mcp.server`)

`McpService(db)` answers the queued requests:

- `start()` creates a fresh `MCP` as `service.mcp` and runs a worker thread.
- `stop()` closes it and waits for the worker to finish.

```python
from chatlog.mcp.server import McpService

service = McpService(db)
service.start()
session = service.mcp.open_session(stream)
service.mcp.handle_message({"sessionId": session.id}, '{"jsonrpc":"2.0","id":1,"method":"ping"}')
service.stop()
```

It answers these methods:

- `initialize`
- `ping`
- `tools/list`
- `tools/call`
- `prompts/list`
- `resources/list`
- `resources/templates/list`
- `resources/read`

Other methods get no reply. A failing request is answered with a JSON-RPC error with code 500.

#### Tools

The five tools are listed by `chatlog.mcp.tools.tool_list()`:

- `query_contact`
- `query_chat_room`
- `query_recent_chat`
- `chatlog`
- `current_time`

#### Resources

- `session://recent`
- `contact://{username}`
- `chatroom://{roomid}`
- `chatlog://{talker}/{timeframe}?limit,offset`

#### Time arguments

Time values accept these forms:

- a year: `2023`
- a month: `2023-04` or `202304`
- a day: `2023-04-18`
- a minute: `2023-04-18/14:30`
- a range of any two of the above, joined by `~`

#### The database object for the service

The `db` given to `McpService` must provide:

- `get_contacts(keyword, limit, offset)`. Items have `user_name`, `alias`, `remark` and `nick_name`.
- `get_chat_rooms(keyword, limit, offset)`. Items have `name`, `remark`, `nick_name`, `owner` and `users`.
- `get_sessions(keyword, limit, offset)`. Items have `plain_text(width)`.
- `get_messages(start, end, talker, sender, keyword, limit, offset)`. Messages have `plain_text(multi_talker, time_format, host)`.

## What this package does not do

- There is no command-line program.
- There is no HTTP server that listens on a port. `MCP.handle_message` and `Session` streams must be connected to a web framework of your choice.
- There is no database access. You supply the `db` objects described above.
- There is no reading of chat data files, no key retrieval and no decryption.
- There is no terminal interface.
- Configuration is not loaded from or saved to disk by the package.