"""Staticfile parsing.

The Staticfile is line oriented: one directive per line, either
`key: value` or a bare `key` meaning true. Blank lines, `#` comments and
trailing ` # ...` comments are ignored. Keys are validated against a closed
schema; keys outside it are reported as warnings so newer Staticfiles keep
building on older compilers.

Schema v1 keys:
    root, host_dot_files, location_include, directory, ssi, ssi_expose,
    pushstate, force_https, http_strict_transport_security,
    http_strict_transport_security_include_subdomains,
    http_strict_transport_security_preload, enable_http2, gzip,
    header (repeatable), proxy (repeatable), status_code (repeatable),
    status_codes (followed by indented `code: page` lines)
"""

import logging
import os
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from errors import ConfigurationConflict, InvalidDirective, MissingConfiguration
from reporting.buildlog import begin_step

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
STATICFILE = 'Staticfile'

TRUE_VALUES = {'true', 'enabled', 'yes', 'on', 'visible'}
FALSE_VALUES = {'false', 'disabled', 'no', 'off'}

CLIENT_ERROR_CODES = (
    '400 401 402 403 404 405 406 407 408 409 410 411 412 413 414 415 416 '
    '417 418 421 422 423 424 426 428 429 431 451'
)
SERVER_ERROR_CODES = '500 501 502 503 504 505 506 507 508 510 511'

_HEADER_NAME = re.compile(r"^[A-Za-z0-9!#$%&'*+.^_`|~-]+$")
_STATUS_CODE = re.compile(r'^[1-5]\d\d$')
_UPSTREAM = re.compile(r'^https?://[^\s/]+')
_INLINE_COMMENT = re.compile(r'\s+#.*$')
# Values written verbatim into the server configuration must not end or open a directive
_CONF_METACHARS = re.compile(r'[;{}]')


class Kind(Enum):
    """Value kinds a directive can carry."""
    BOOL = 'bool'
    PATH = 'path'
    HEADER = 'header'
    PROXY = 'proxy'
    STATUS_CODE = 'status_code'
    STATUS_MAP = 'status_map'

    @property
    def repeatable(self) -> bool:
        return self in (Kind.HEADER, Kind.PROXY, Kind.STATUS_CODE, Kind.STATUS_MAP)


@dataclass(frozen=True)
class Directive:
    """One schema entry: Staticfile key, target field, kind and default."""
    key: str
    field: str
    kind: Kind
    default: Any = None


SCHEMA: dict[str, Directive] = {d.key: d for d in (
    Directive('root', 'root', Kind.PATH, '.'),
    Directive('host_dot_files', 'host_dot_files', Kind.BOOL, False),
    Directive('location_include', 'location_include', Kind.PATH, None),
    Directive('directory', 'directory_listing', Kind.BOOL, False),
    Directive('ssi', 'ssi_enabled', Kind.BOOL, False),
    Directive('ssi_expose', 'ssi_expose', Kind.BOOL, False),
    Directive('pushstate', 'pushstate', Kind.BOOL, False),
    Directive('force_https', 'force_https', Kind.BOOL, False),
    Directive('http_strict_transport_security', 'hsts', Kind.BOOL, False),
    Directive('http_strict_transport_security_include_subdomains', 'hsts_include_subdomains', Kind.BOOL, False),
    Directive('http_strict_transport_security_preload', 'hsts_preload', Kind.BOOL, False),
    Directive('enable_http2', 'http2', Kind.BOOL, False),
    Directive('gzip', 'compression', Kind.BOOL, True),
    Directive('header', 'custom_headers', Kind.HEADER),
    Directive('proxy', 'proxies', Kind.PROXY),
    Directive('status_code', 'status_codes', Kind.STATUS_CODE),
    Directive('status_codes', 'status_codes', Kind.STATUS_MAP),
)}


@dataclass(frozen=True)
class ProxyRoute:
    """Forward requests under path to upstream."""
    path: str
    upstream: str


@dataclass
class StaticConfig:
    """Validated Staticfile options. Unset options keep safe defaults.

    root_set records that a root value was given at all; root_explicit that
    it names something other than the application directory.
    """
    root: str = '.'
    root_set: bool = False
    root_explicit: bool = False
    host_dot_files: bool = False
    location_include: Optional[str] = None
    directory_listing: bool = False
    ssi_enabled: bool = False
    ssi_expose: bool = False
    pushstate: bool = False
    force_https: bool = False
    hsts: bool = False
    hsts_include_subdomains: bool = False
    hsts_preload: bool = False
    http2: bool = False
    compression: bool = True
    custom_headers: dict[str, str] = field(default_factory=dict)
    proxies: list[ProxyRoute] = field(default_factory=list)
    status_codes: dict[str, str] = field(default_factory=dict)
    basic_auth_enabled: bool = False


@dataclass
class ParseResult:
    """Parsed options plus non-fatal warnings, in line order."""
    config: StaticConfig
    warnings: list[str] = field(default_factory=list)
    found: bool = True


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
        return value[1:-1]
    return value


def _clean_value(value: str) -> str:
    """Strip quotes, or a trailing ` # comment` from an unquoted value."""
    value = value.strip()
    if value[:1] in ('"', "'"):
        end = value.find(value[0], 1)
        if end > 0:
            return value[1:end]
        return value
    return _INLINE_COMMENT.sub('', value)


def _split_line(line: str) -> tuple[str, Optional[str]]:
    """Split a directive line into key and raw value (None for bare keys)."""
    if ':' not in line:
        return _INLINE_COMMENT.sub('', line).strip(), None
    key, value = line.split(':', 1)
    return _unquote(key.strip()), _clean_value(value)


def _check_conf_safe(key: str, value: str, lineno: int) -> None:
    if _CONF_METACHARS.search(value):
        raise InvalidDirective(
            f"Staticfile line {lineno}: '{key}' value '{value}' may not contain ';', '{{' or '}}'"
        )


def _coerce_bool(value: Optional[str]) -> Optional[bool]:
    if value is None:
        return True
    lowered = value.lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    return None


def _parse_header(value: str, lineno: int) -> tuple[str, str]:
    if ':' not in value:
        raise InvalidDirective(
            f"Staticfile line {lineno}: header must look like 'header: Name: value'"
        )
    name, header_value = value.split(':', 1)
    name, header_value = name.strip(), _unquote(header_value.strip())
    if not _HEADER_NAME.match(name):
        raise InvalidDirective(f"Staticfile line {lineno}: invalid header name '{name}'")
    if not header_value:
        raise InvalidDirective(f"Staticfile line {lineno}: header '{name}' has an empty value")
    return name, header_value


def _parse_proxy(value: str, lineno: int) -> ProxyRoute:
    parts = value.split()
    if len(parts) != 2:
        raise InvalidDirective(
            f"Staticfile line {lineno}: proxy must look like 'proxy: /path/ https://upstream/path/'"
        )
    path, upstream = parts
    if not path.startswith('/'):
        raise InvalidDirective(f"Staticfile line {lineno}: proxy path '{path}' must start with '/'")
    if not _UPSTREAM.match(upstream):
        raise InvalidDirective(
            f"Staticfile line {lineno}: proxy upstream '{upstream}' must be an http:// or https:// URL"
        )
    _check_conf_safe('proxy', value, lineno)
    return ProxyRoute(path=path, upstream=upstream)


def _parse_status_code(value: str, lineno: int) -> tuple[str, str]:
    parts = value.split()
    if len(parts) != 2:
        raise InvalidDirective(
            f"Staticfile line {lineno}: status_code must look like 'status_code: 404 /404.html'"
        )
    code, page = parts
    if code.lower() == '4xx':
        codes = CLIENT_ERROR_CODES
    elif code.lower() == '5xx':
        codes = SERVER_ERROR_CODES
    elif _STATUS_CODE.match(code):
        codes = code
    else:
        raise InvalidDirective(f"Staticfile line {lineno}: invalid status code '{code}'")
    if not page.startswith('/'):
        raise InvalidDirective(f"Staticfile line {lineno}: error page '{page}' must start with '/'")
    _check_conf_safe('status_code', page, lineno)
    return codes, page


def parse_staticfile(text: str) -> ParseResult:
    """Parse Staticfile text into StaticConfig.

    Deterministic and free of side effects. A `status_codes:` line opens a
    mapping; the indented `code: page` lines after it are its entries.

    Raises:
        InvalidDirective: A repeatable directive has a malformed value
        ConfigurationConflict: The same response header is declared twice
    """
    config = StaticConfig()
    warnings: list[str] = []
    seen: dict[str, int] = {}
    header_names: dict[str, str] = {}
    in_status_map = False

    for lineno, raw in enumerate(text.splitlines(), 1):
        line = raw.strip()
        if not line or line.startswith('#'):
            continue

        if in_status_map and raw[:1] in (' ', '\t'):
            code, page = _split_line(line)
            if not page:
                raise InvalidDirective(
                    f"Staticfile line {lineno}: status_codes entries must look like '404: /404.html'"
                )
            codes, page = _parse_status_code(f"{code} {page}", lineno)
            config.status_codes[codes] = page
            continue
        in_status_map = False

        key, value = _split_line(line)
        directive = SCHEMA.get(key)
        if directive is None:
            warnings.append(f"Ignoring unknown Staticfile directive '{key}' on line {lineno}")
            continue

        if directive.kind is Kind.STATUS_MAP:
            if value:
                raise InvalidDirective(
                    f"Staticfile line {lineno}: '{key}' takes indented 'code: page' lines, not a value"
                )
            in_status_map = True
            continue

        if directive.kind.repeatable:
            if not value:
                raise InvalidDirective(f"Staticfile line {lineno}: '{key}' requires a value")
            if directive.kind is Kind.HEADER:
                name, header_value = _parse_header(value, lineno)
                if name.lower() in header_names:
                    raise ConfigurationConflict(
                        f"Staticfile line {lineno}: header '{name}' is already set "
                        f"as '{header_names[name.lower()]}'"
                    )
                header_names[name.lower()] = name
                config.custom_headers[name] = header_value
            elif directive.kind is Kind.PROXY:
                config.proxies.append(_parse_proxy(value, lineno))
            else:
                codes, page = _parse_status_code(value, lineno)
                config.status_codes[codes] = page
            continue

        if key in seen:
            warnings.append(
                f"Staticfile directive '{key}' on line {lineno} repeats line {seen[key]}; using the last value"
            )
        seen[key] = lineno

        if directive.kind is Kind.BOOL:
            if value == '':
                setattr(config, directive.field, directive.default)
                continue
            coerced = _coerce_bool(value)
            if coerced is None:
                warnings.append(
                    f"Ignoring invalid value for '{key}' on line {lineno} (expected true or false)"
                )
                coerced = directive.default
            setattr(config, directive.field, coerced)
        else:
            if value is None:
                raise InvalidDirective(f"Staticfile line {lineno}: '{key}' requires a value")
            if value:
                _check_conf_safe(key, value, lineno)
            setattr(config, directive.field, value or directive.default)

    if 'root' in seen and config.root:
        config.root_set = True
        config.root_explicit = os.path.normpath(config.root) != '.'
    if not config.root:
        config.root = '.'

    return ParseResult(config=config, warnings=warnings)


def load_staticfile(build_dir: Path, strict: bool = False, force_https: bool = False) -> ParseResult:
    """Read and parse <build_dir>/Staticfile.

    Args:
        build_dir: Application source tree
        strict: Treat a missing Staticfile as an error
        force_https: External HTTPS-enforcement signal, OR-ed into the result

    Raises:
        MissingConfiguration: strict and no Staticfile
    """
    path = Path(build_dir) / STATICFILE
    if path.is_file():
        result = parse_staticfile(path.read_text(encoding='utf-8'))
    elif strict:
        raise MissingConfiguration(
            f"missing configuration file: {STATICFILE} not found in application directory"
        )
    else:
        result = ParseResult(config=StaticConfig(), found=False)

    if force_https:
        result.config.force_https = True

    cfg = result.config
    if not cfg.hsts and (cfg.hsts_include_subdomains or cfg.hsts_preload):
        result.warnings.append(
            "http_strict_transport_security is not enabled while "
            "http_strict_transport_security_include_subdomains or "
            "http_strict_transport_security_preload have been enabled.\n"
            "Those options do nothing without http_strict_transport_security."
        )
    if cfg.ssi_expose and not cfg.ssi_enabled:
        result.warnings.append("ssi_expose has no effect unless ssi is also enabled")

    return result


def announce_features(config: StaticConfig) -> None:
    """Log one line per enabled feature. Disabled defaults stay silent."""
    if config.host_dot_files:
        begin_step(logger, "Enabling hosting of dotfiles")
    if config.location_include:
        begin_step(logger, f"Enabling location include file {config.location_include}")
    if config.directory_listing:
        begin_step(logger, "Enabling directory index for folders without index.html files")
    if config.ssi_enabled:
        begin_step(logger, "Enabling SSI")
        if config.ssi_expose:
            begin_step(logger, "Enabling SSI access to platform variables")
    if config.pushstate:
        begin_step(logger, "Enabling pushstate")
    if config.hsts:
        begin_step(logger, "Enabling HSTS")
        if config.hsts_include_subdomains:
            begin_step(logger, "Enabling HSTS includeSubDomains")
        if config.hsts_preload:
            begin_step(logger, "Enabling HSTS Preload")
    if config.force_https:
        begin_step(logger, "Enabling HTTPS redirect")
    if config.http2:
        begin_step(logger, "Enabling HTTP/2")
    if config.custom_headers:
        begin_step(logger, f"Enabling custom headers: {', '.join(config.custom_headers)}")
    for route in config.proxies:
        begin_step(logger, f"Enabling reverse proxy {route.path} -> {route.upstream}")
    if config.status_codes:
        begin_step(logger, "Enabling custom pages for status_codes")
