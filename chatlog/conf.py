"""Stored configuration: the last account and per-account history."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any


@dataclass
class FileRecord:
    path: str = ""
    modified_time: int = 0
    size: int = 0

    @classmethod
    def _from_dict(cls, data: Mapping[str, Any]) -> FileRecord:
        return cls(
            path=str(data.get("path") or ""),
            modified_time=int(data.get("modified_time") or 0),
            size=int(data.get("size") or 0),
        )

    def _to_dict(self) -> dict[str, Any]:
        return {"path": self.path, "modified_time": self.modified_time, "size": self.size}


@dataclass
class ProcessConfig:
    type: str = ""
    account: str = ""
    platform: str = ""
    version: int = 0
    full_version: str = ""
    data_dir: str = ""
    data_key: str = ""
    work_dir: str = ""
    http_enabled: bool = False
    http_addr: str = ""
    last_time: int = 0
    files: list[FileRecord] = field(default_factory=list)

    @classmethod
    def _from_dict(cls, data: Mapping[str, Any]) -> ProcessConfig:
        return cls(
            type=str(data.get("type") or ""),
            account=str(data.get("account") or ""),
            platform=str(data.get("platform") or ""),
            version=int(data.get("version") or 0),
            full_version=str(data.get("full_version") or ""),
            data_dir=str(data.get("data_dir") or ""),
            data_key=str(data.get("data_key") or ""),
            work_dir=str(data.get("work_dir") or ""),
            http_enabled=bool(data.get("http_enabled") or False),
            http_addr=str(data.get("http_addr") or ""),
            last_time=int(data.get("last_time") or 0),
            files=[FileRecord._from_dict(f) for f in data.get("files") or []],
        )

    def _to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "account": self.account,
            "platform": self.platform,
            "version": self.version,
            "full_version": self.full_version,
            "data_dir": self.data_dir,
            "data_key": self.data_key,
            "work_dir": self.work_dir,
            "http_enabled": self.http_enabled,
            "http_addr": self.http_addr,
            "last_time": self.last_time,
            "files": [f._to_dict() for f in self.files],
        }


@dataclass
class Config:
    config_dir: str = ""
    last_account: str = ""
    history: list[ProcessConfig] = field(default_factory=list)

    def parse_history(self) -> dict[str, ProcessConfig]:
        """History keyed by account; a later entry wins over an earlier one."""
        return {entry.account: entry for entry in self.history}

    def update_history(self, account: str, conf: ProcessConfig) -> None:
        """Replace the entry of account, or append one, and mark it as last."""
        for index, entry in enumerate(self.history):
            if entry.account == account:
                self.history[index] = conf
                break
        else:
            self.history.append(conf)
        self.last_account = account

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Config:
        """Build from stored data; config_dir is never stored and stays empty."""
        return cls(
            last_account=str(data.get("last_account") or ""),
            history=[ProcessConfig._from_dict(h) for h in data.get("history") or []],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "last_account": self.last_account,
            "history": [entry._to_dict() for entry in self.history],
        }