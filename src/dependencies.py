"""Server runtime supply.

Downloads the nginx tarball named in the compiler manifest, verifies it
and unpacks it under the build tree. Downloads are cached per cache_dir
and keyed by checksum, so a second compile of the same app is offline.
"""

import logging
import shutil
import tarfile
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

import requests

from common import sha256_file
from config import BuildpackManifest, CompilerSettings, Dependency
from errors import DependencyFetchFailure
from reporting.buildlog import begin_step

logger = logging.getLogger(__name__)

SERVER_DEPENDENCY = 'nginx'
DEPS_DIR = '.deps'
DOWNLOAD_TIMEOUT = 60


@dataclass
class InstalledServer:
    """Where the server runtime ended up."""
    version: str
    home: Optional[Path] = None  # None when provided by the runtime image
    cached: bool = False


def redact_uri(uri: str) -> str:
    """Strip user info from a download URI before it is logged."""
    parts = urlsplit(uri)
    if parts.username is None and parts.password is None:
        return uri
    host = parts.hostname or ''
    if parts.port:
        host = f"{host}:{parts.port}"
    return urlunsplit((parts.scheme, f"-redacted-@{host}", parts.path, parts.query, parts.fragment))


def _requests_proxies(proxies: dict) -> dict:
    return {('no_proxy' if scheme == 'no' else scheme): value for scheme, value in proxies.items()}


def _cache_path(cache_dir: Path, dep: Dependency) -> Path:
    filename = Path(urlsplit(dep.uri).path).name or f"{dep.name}.tgz"
    key = dep.sha256[:12] if dep.sha256 else dep.version
    return cache_dir / 'dependencies' / key / filename


def _checksum_ok(path: Path, expected: str) -> bool:
    return not expected or sha256_file(path) == expected.lower()


def _download(dep: Dependency, dest: Path, proxies: dict) -> None:
    """Stream dep.uri into dest through a temp file.

    Raises:
        DependencyFetchFailure: On any transport error or non-200 response
    """
    safe_uri = redact_uri(dep.uri)
    logger.info(f"Download [{safe_uri}]")
    dest.parent.mkdir(parents=True, exist_ok=True)

    try:
        with requests.get(dep.uri, stream=True, timeout=DOWNLOAD_TIMEOUT,
                          proxies=_requests_proxies(proxies)) as resp:
            if resp.status_code != 200:
                raise DependencyFetchFailure(
                    f"Could not download {dep.name} {dep.version}: "
                    f"HTTP {resp.status_code} from {safe_uri}"
                )
            with tempfile.NamedTemporaryFile(dir=dest.parent, delete=False) as tmp:
                for chunk in resp.iter_content(chunk_size=64 * 1024):
                    tmp.write(chunk)
            Path(tmp.name).replace(dest)
    except requests.exceptions.ConnectionError:
        raise DependencyFetchFailure(
            f"Could not download {dep.name} {dep.version}: cannot connect to {safe_uri}"
        ) from None
    except requests.exceptions.Timeout:
        raise DependencyFetchFailure(
            f"Could not download {dep.name} {dep.version}: timeout fetching {safe_uri}"
        ) from None
    except requests.exceptions.RequestException as e:
        raise DependencyFetchFailure(
            f"Could not download {dep.name} {dep.version}: {type(e).__name__}"
        ) from None
    except OSError as e:
        raise DependencyFetchFailure(
            f"Could not store {dep.name} {dep.version} in cache: {e.strerror or e}"
        ) from e


def _extract(archive: Path, dest: Path) -> None:
    """Unpack a tarball, refusing members that would land outside dest."""
    if dest.exists():
        shutil.rmtree(dest)
    dest.mkdir(parents=True)
    try:
        with tarfile.open(archive) as tar:
            for member in tar.getmembers():
                target = (dest / member.name).resolve()
                if target != dest.resolve() and dest.resolve() not in target.parents:
                    raise DependencyFetchFailure(
                        f"Refusing to extract {archive.name}: member {member.name} escapes {dest.name}"
                    )
            tar.extractall(dest)
    except (tarfile.TarError, OSError) as e:
        raise DependencyFetchFailure(f"Could not extract {archive.name}: {e}") from e


def install_server(
    manifest: BuildpackManifest,
    settings: CompilerSettings,
    build_dir: Path,
    cache_dir: Path,
) -> InstalledServer:
    """Make the server runtime available to the launched app.

    Raises:
        DependencyFetchFailure: Download, checksum or extraction failed
    """
    begin_step(logger, f"Installing {SERVER_DEPENDENCY}")

    dep = manifest.default_dependency(SERVER_DEPENDENCY, settings.stack)
    if dep is None:
        raise DependencyFetchFailure(
            f"No {SERVER_DEPENDENCY} dependency declared for stack '{settings.stack or 'any'}'"
        )
    logger.info(f"Using {SERVER_DEPENDENCY} version {dep.version}")

    if not dep.uri:
        logger.debug(f"{SERVER_DEPENDENCY} {dep.version} is provided by the runtime image")
        return InstalledServer(version=dep.version)

    archive = _cache_path(Path(cache_dir), dep)
    cached = archive.is_file() and _checksum_ok(archive, dep.sha256)
    if cached:
        logger.info(f"Copy [{archive}]")
    else:
        _download(dep, archive, settings.proxies)
        if not _checksum_ok(archive, dep.sha256):
            archive.unlink(missing_ok=True)
            raise DependencyFetchFailure(
                f"Checksum mismatch for {dep.name} {dep.version} downloaded from {redact_uri(dep.uri)}"
            )

    home = Path(build_dir) / DEPS_DIR / SERVER_DEPENDENCY
    _extract(archive, home)
    return InstalledServer(version=dep.version, home=home, cached=cached)
