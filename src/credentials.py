"""Basic-auth credentials from the Staticfile.auth sidecar.

Credential material never reaches a log call or an exception message: errors
name the file and line number only, and Credentials redacts itself in repr.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

from errors import InvalidCredentials
from reporting.buildlog import begin_step

logger = logging.getLogger(__name__)

AUTH_FILE = 'Staticfile.auth'


@dataclass(frozen=True)
class Credentials:
    """Ordered (username, password-hash) pairs."""
    entries: tuple[tuple[str, str], ...]

    def __repr__(self) -> str:
        return f"Credentials(users={len(self.entries)}, hashes=<redacted>)"

    __str__ = __repr__

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[tuple[str, str]]:
        return iter(self.entries)

    def to_htpasswd(self) -> str:
        """Render in htpasswd format for the server's auth directive."""
        return ''.join(f"{user}:{password_hash}\n" for user, password_hash in self.entries)


def parse_credentials(text: str, source: str = AUTH_FILE) -> Credentials:
    """Parse `username:passwordhash` lines.

    Raises:
        InvalidCredentials: On a malformed line, a duplicate user, or no entries
    """
    entries: list[tuple[str, str]] = []
    users: set[str] = set()

    for lineno, raw in enumerate(text.splitlines(), 1):
        line = raw.strip()
        if not line or line.startswith('#'):
            continue
        if ':' not in line:
            raise InvalidCredentials(f"{source} line {lineno} is not a username:passwordhash pair")
        user, password_hash = line.split(':', 1)
        if not user or not password_hash:
            raise InvalidCredentials(f"{source} line {lineno} has an empty username or password hash")
        if user in users:
            raise InvalidCredentials(f"{source} line {lineno} repeats a username")
        users.add(user)
        entries.append((user, password_hash))

    if not entries:
        raise InvalidCredentials(f"{source} contains no credentials")

    return Credentials(entries=tuple(entries))


def load_credentials(build_dir: Path) -> Optional[Credentials]:
    """Load credentials if the sidecar exists.

    Returns:
        Credentials, or None when the sidecar is absent (basic auth off)

    Raises:
        InvalidCredentials: If the sidecar is unreadable or malformed
    """
    auth_file = Path(build_dir) / AUTH_FILE
    if not auth_file.exists():
        return None

    try:
        text = auth_file.read_text(encoding='utf-8')
    except (OSError, UnicodeDecodeError) as exc:
        # exc.strerror only; a decode error would quote the offending bytes
        reason = getattr(exc, 'strerror', None) or 'not valid UTF-8 text'
        raise InvalidCredentials(f"{AUTH_FILE} could not be read: {reason}") from None

    credentials = parse_credentials(text)
    begin_step(logger, f"Enabling basic authentication using {AUTH_FILE}")
    return credentials


def write_htpasswd(credentials: Credentials, dest: Path) -> None:
    """Write the server's password file, readable by the owner only."""
    dest.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(dest, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, 'w', encoding='utf-8') as f:
        f.write(credentials.to_htpasswd())
    os.chmod(dest, 0o600)
