"""Member directory used to resolve ids into display names."""

import json
import logging
from collections.abc import Iterable
from pathlib import Path

from .models import Member

logger = logging.getLogger(__name__)


class MemberDirectory:
    """Read-only lookup of group members by id."""

    def __init__(self, members: Iterable[Member] = ()):
        """Initialize the directory."""
        self._members = {member.member_id: member for member in members}

    @classmethod
    def from_file(cls, path: Path) -> "MemberDirectory":
        """
        Load members from a JSON export.

        Accepts a bare list or ``{"members": [...]}`` where each entry has a
        ``device_id`` and an optional ``username``.
        """
        data = json.loads(path.read_text(encoding="utf-8"))
        if isinstance(data, dict):
            data = data.get("members", [])
        directory = cls(Member.model_validate(item) for item in data)
        logger.info(f"Loaded {len(directory)} members from {path}")
        return directory

    def __len__(self) -> int:
        return len(self._members)

    def __contains__(self, member_id: object) -> bool:
        return member_id in self._members

    def get(self, member_id: str) -> Member | None:
        return self._members.get(member_id)

    def label(self, member_id: str) -> str:
        """Display name for a member id, falling back for unknown members."""
        member = self._members.get(member_id)
        if member is None:
            return Member(member_id=member_id).display_name
        return member.display_name

    @property
    def member_ids(self) -> list[str]:
        return list(self._members)
