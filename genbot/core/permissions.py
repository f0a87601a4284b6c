"""Role lookup and per-role command permissions."""
import logging
from typing import Dict, FrozenSet, List, Optional

from .commands import Command, Role
from .config import AccessConfig

logger = logging.getLogger(__name__)

ANY = "*"


class RoleSource:
    """Resolves usernames to roles and checks command permissions.

    Roles are checked admin first. A ``*`` member matches every username,
    a ``*`` command allows every command. Users without a role are denied.
    """

    def __init__(self, access: AccessConfig):
        self._members: Dict[Role, FrozenSet[str]] = {
            Role.ADMIN: frozenset(access.admins),
            Role.USER: frozenset(access.users),
        }
        self._commands: Dict[Role, FrozenSet[str]] = {
            Role.ADMIN: frozenset(access.admin_commands),
            Role.USER: frozenset(access.user_commands),
        }

        for role, names in self._commands.items():
            unknown = [n for n in names if n != ANY and Command.lookup(n) is None]
            if unknown:
                logger.warning(f"Unknown commands in {role.value} permissions: {unknown}")

    def role_of(self, username: str) -> Optional[Role]:
        for role in Role:
            members = self._members[role]
            if ANY in members or username in members:
                return role
        return None

    def allowed(self, role: Optional[Role], command: Command) -> bool:
        if role is None:
            return False
        commands = self._commands[role]
        return ANY in commands or command.value in commands

    def is_allowed(self, username: str, command: Command) -> bool:
        """Shortcut for ``allowed(role_of(username), command)``."""
        return self.allowed(self.role_of(username), command)

    def commands_for(self, role: Optional[Role]) -> List[Command]:
        """Commands ``role`` may use, in declaration order."""
        return [c for c in Command if self.allowed(role, c)]
