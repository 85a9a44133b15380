from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(slots=True)
class ConversationSettings:
    notification: bool = True


@dataclass(frozen=True, slots=True)
class GroupMember:
    id: int | str
    name: str = ""
    alias: str | None = None


@dataclass(slots=True)
class GroupSettings:
    notification: bool = True
    name: str = ""
    owner_id: int | None = None
    allow_group_chat: bool = False
    members: list[GroupMember] = field(default_factory=list)

    def add_member(self, member: GroupMember) -> None:
        if any(m.id == member.id for m in self.members):
            return
        self.members.append(member)

    def remove_member(self, member_id: int | str) -> bool:
        before = len(self.members)
        self.members = [m for m in self.members if m.id != member_id]
        return len(self.members) != before


@dataclass(frozen=True, slots=True)
class UserSettings:
    notification: bool = True
    sound: bool = True
