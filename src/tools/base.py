# src/tools/base.py
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

IN_PROGRESS = "IN_PROGRESS"
SUCCESS = "SUCCESS"
FAILURE = "FAILURE"
ABORTED = "ABORTED"


@dataclass
class TriggeredBuild:
    external_id: str
    status: str
    url: str
    name: Optional[str] = None


@dataclass
class BuildInfo:
    external_id: str
    status: str
    result: Optional[str]
    url: Optional[str]
    timestamp: Optional[int]


def normalize_build_status(building: bool, result: Optional[str]) -> str:
    if building:
        return IN_PROGRESS
    if result in (SUCCESS, FAILURE):
        return result
    return ABORTED


class RunnerAdapter(ABC):
    @abstractmethod
    def trigger(self, parameters: Dict[str, Any]) -> TriggeredBuild:
        pass

    @abstractmethod
    def get_status(self, external_id: str) -> BuildInfo:
        pass

    @abstractmethod
    def get_log(self, external_id: str) -> str:
        pass

    @abstractmethod
    def is_running(self, external_id: str) -> bool:
        pass
