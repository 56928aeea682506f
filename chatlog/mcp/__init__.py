"""Model Context Protocol types, SSE sessions, tool definitions and the chat history service."""