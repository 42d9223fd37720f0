"""Foundational TypedDicts for dataclass to_dict() returns."""

from __future__ import annotations

from typing import NewType, TypedDict

ISOTimestamp = NewType("ISOTimestamp", str)


class ProjectConfig(TypedDict, total=False):
    """Shape of .trellis/config.json."""

    prefix: str
    version: int
    attachments_dir: str


class ProjectDict(TypedDict):
    id: str
    name: str
    description: str
    created_at: ISOTimestamp
    updated_at: ISOTimestamp
    task_count: int


class TaskDict(TypedDict):
    id: str
    project_id: str | None
    title: str
    description: str
    status: str
    completion: int
    parent_id: str | None
    created_at: ISOTimestamp
    updated_at: ISOTimestamp
    completed_at: ISOTimestamp | None
    subtasks: list[str]
    depends_on: list[str]
    dependents: list[str]
    can_start: bool


class DependencyDict(TypedDict):
    id: int
    dependent_id: str
    depends_on_id: str
    created_at: ISOTimestamp


class DependencyViewDict(DependencyDict):
    """Edge resolved with the depends-on task's current title and status."""

    depends_on_title: str
    depends_on_status: str


class TaskFileDict(TypedDict):
    id: int
    task_id: str
    path: str
    change_note: str | None
    modified_at: ISOTimestamp


class TaskIssueDict(TypedDict):
    id: int
    task_id: str
    title: str
    description: str | None
    status: str
    created_at: ISOTimestamp
    resolved_at: ISOTimestamp | None
