"""Server configuration synthesis.

The configuration is assembled by an ordered list of contributors. Each
contributor looks at the validated options and resolved facts and adds
directives to one of four scopes:

    http      - global HTTP settings (compression)
    server    - applies to every request before location matching
                (listener, HTTPS redirect, basic auth, HSTS, headers,
                SSI variables, error pages)
    content   - the `location /` block serving the document root
    locations - extra location blocks (reverse proxies, dotfile rule)

Precedence follows CONTRIBUTORS order. Enforcement directives (HTTPS
redirect, basic auth) sit at server scope so they run before any location
is selected, including proxy locations. Among locations nginx picks the
most specific match; the dotfile rule is a regex location and so wins
over every prefix location.

Output contains placeholders rendered at launch: ${PORT}, ${APP_ROOT},
and ${VCAP_SERVICES}/${VCAP_APPLICATION} when SSI variable exposure is on.
"""

from dataclasses import dataclass, field
from typing import Callable, Optional

from credentials import Credentials
from errors import ConfigurationConflict
from generator.conf import Block, quote, render
from paths import ResolvedRoot
from staticfile import StaticConfig

HSTS_MAX_AGE = 31536000
INDEX_FILES = 'index.html index.htm Default.htm'
HTPASSWD = '.htpasswd'

# Placeholders the launch script substitutes, always and when SSI exposure is on
LAUNCH_PLACEHOLDERS = ('PORT', 'APP_ROOT')
EXPOSED_PLACEHOLDERS = ('VCAP_SERVICES', 'VCAP_APPLICATION')

GZIP_TYPES = (
    'text/plain text/css text/js text/xml text/javascript application/javascript '
    'application/x-javascript application/json application/xml application/xml+rss'
)

WARN_LOCATION_INCLUDE_WITHOUT_ROOT = (
    "The location_include directive only works in conjunction with root.\n"
    "Please specify root to use location_include"
)
WARN_OVERRIDE_DIR_WITHOUT_ROOT = (
    "You have an nginx/conf directory, but have not set *root*, or have set it to '.'.\n"
    "If you are using the nginx/conf directory for nginx configuration, "
    "you probably need to also set the *root* directive."
)


@dataclass(frozen=True)
class GeneratorInput:
    """Everything the generator depends on."""
    root: ResolvedRoot
    config: StaticConfig
    credentials: Optional[Credentials] = None
    override_dir_present: bool = False


@dataclass(frozen=True)
class GeneratedConfig:
    """Rendered configuration text plus diagnostic metadata."""
    text: str
    features: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    placeholders: tuple[str, ...] = LAUNCH_PLACEHOLDERS


@dataclass
class Fragments:
    """Directives collected from contributors, by scope."""
    http: list = field(default_factory=list)
    server: list = field(default_factory=list)
    content: list = field(default_factory=list)
    locations: list[Block] = field(default_factory=list)
    features: list[str] = field(default_factory=list)
    placeholders: list[str] = field(default_factory=lambda: list(LAUNCH_PLACEHOLDERS))


Contributor = Callable[[GeneratorInput, Fragments], None]


def compression(inp: GeneratorInput, out: Fragments) -> None:
    if not inp.config.compression:
        out.http.append('gzip off')
        return
    out.features.append('compression')
    out.http.extend([
        'gzip on',
        'gzip_disable "msie6"',
        'gzip_comp_level 6',
        'gzip_min_length 1100',
        'gzip_buffers 16 8k',
        'gzip_proxied any',
        'gunzip on',
        'gzip_static always',
        f'gzip_types {GZIP_TYPES}',
        'gzip_vary on',
    ])


def listener(inp: GeneratorInput, out: Fragments) -> None:
    if inp.config.http2:
        out.features.append('http2')
        out.server.append('listen ${PORT} http2')
    else:
        out.server.append('listen ${PORT}')
    out.server.append('server_name localhost')


def https_redirect(inp: GeneratorInput, out: Fragments) -> None:
    if not inp.config.force_https:
        return
    out.features.append('https_redirect')
    redirect = Block('if ($http_x_forwarded_proto != "https")')
    redirect.add('return 301 https://$host$request_uri')
    out.server.append(redirect)


def basic_auth(inp: GeneratorInput, out: Fragments) -> None:
    if not inp.credentials:
        return
    out.features.append('basic_auth')
    out.server.append('auth_basic "Restricted"')
    out.server.append(f'auth_basic_user_file ${{APP_ROOT}}/nginx/conf/{HTPASSWD}')


def hsts(inp: GeneratorInput, out: Fragments) -> None:
    cfg = inp.config
    if not cfg.hsts:
        return
    value = f'max-age={HSTS_MAX_AGE}'
    if cfg.hsts_include_subdomains:
        value += '; includeSubDomains'
    if cfg.hsts_preload:
        value += '; preload'
    out.features.append('hsts')
    out.server.append(f'add_header Strict-Transport-Security {quote(value)}')


def custom_headers(inp: GeneratorInput, out: Fragments) -> None:
    headers = inp.config.custom_headers
    if not headers:
        return
    if inp.config.hsts and any(n.lower() == 'strict-transport-security' for n in headers):
        raise ConfigurationConflict(
            "header Strict-Transport-Security conflicts with http_strict_transport_security; "
            "set only one of them"
        )
    out.features.append('custom_headers')
    for name, value in headers.items():
        out.server.append(f'add_header {name} {quote(value)} always')


def ssi_expose(inp: GeneratorInput, out: Fragments) -> None:
    cfg = inp.config
    if not (cfg.ssi_enabled and cfg.ssi_expose):
        return
    out.features.append('ssi_expose')
    for name in EXPOSED_PLACEHOLDERS:
        # Single-quoted; the launch script escapes quotes in the values
        out.server.append(f"set ${name.lower()} '${{{name}}}'")
        out.placeholders.append(name)


def status_codes(inp: GeneratorInput, out: Fragments) -> None:
    if not inp.config.status_codes:
        return
    out.features.append('status_codes')
    for codes, page in inp.config.status_codes.items():
        out.server.append(f'error_page {codes} {page}')


def document_root(inp: GeneratorInput, out: Fragments) -> None:
    out.content.append('root ${APP_ROOT}/public')


def pushstate(inp: GeneratorInput, out: Fragments) -> None:
    if not inp.config.pushstate:
        out.content.append(f'index {INDEX_FILES}')
        return
    out.features.append('pushstate')
    fallback = Block('if (!-e $request_filename)')
    fallback.add('rewrite ^(.*)$ / break')
    out.content.append(fallback)
    out.content.append(f'index {INDEX_FILES}')


def directory_listing(inp: GeneratorInput, out: Fragments) -> None:
    if not inp.config.directory_listing:
        return
    out.features.append('directory_listing')
    out.content.append('autoindex on')


def ssi(inp: GeneratorInput, out: Fragments) -> None:
    if not inp.config.ssi_enabled:
        return
    out.features.append('ssi')
    out.content.append('ssi on')


def location_include(inp: GeneratorInput, out: Fragments) -> None:
    if not inp.config.location_include:
        return
    out.features.append('location_include')
    out.content.append(f'include {inp.config.location_include}')


def proxies(inp: GeneratorInput, out: Fragments) -> None:
    routes = inp.config.proxies
    if not routes:
        return
    seen: set[str] = set()
    for route in routes:
        if route.path == '/':
            raise ConfigurationConflict(
                "proxy on / conflicts with the static content location; proxy a sub-path instead"
            )
        if route.path in seen:
            raise ConfigurationConflict(f"proxy path {route.path} is configured more than once")
        seen.add(route.path)

        location = Block(f'location {route.path}')
        location.add(f'proxy_pass {route.upstream}')
        if route.upstream.startswith('https://'):
            location.add('proxy_ssl_server_name on')
        out.locations.append(location)
    out.features.append('proxies')


def dotfiles(inp: GeneratorInput, out: Fragments) -> None:
    if inp.config.host_dot_files:
        out.features.append('host_dot_files')
        return
    location = Block(r'location ~ /\.')
    location.add('deny all', 'return 404')
    out.locations.append(location)


CONTRIBUTORS: tuple[tuple[str, Contributor], ...] = (
    ('compression', compression),
    ('listener', listener),
    ('https_redirect', https_redirect),
    ('basic_auth', basic_auth),
    ('hsts', hsts),
    ('custom_headers', custom_headers),
    ('ssi_expose', ssi_expose),
    ('status_codes', status_codes),
    ('document_root', document_root),
    ('pushstate', pushstate),
    ('directory_listing', directory_listing),
    ('ssi', ssi),
    ('location_include', location_include),
    ('proxies', proxies),
    ('dotfiles', dotfiles),
)


def _warnings(inp: GeneratorInput) -> list[str]:
    warnings = []
    if inp.config.location_include and not inp.config.root_set:
        warnings.append(WARN_LOCATION_INCLUDE_WITHOUT_ROOT)
    if inp.override_dir_present and not inp.config.root_explicit:
        warnings.append(WARN_OVERRIDE_DIR_WITHOUT_ROOT)
    return warnings


def _assemble(out: Fragments) -> Block:
    conf = Block()
    conf.add('worker_processes 1', 'daemon off', 'error_log stderr')
    conf.block('events').add('worker_connections 1024')

    http = conf.block('http')
    http.add(
        'charset utf-8',
        "log_format cloudfoundry '$http_x_forwarded_for - $http_referer - [$time_local] "
        "\"$request\" $status $body_bytes_sent'",
        'access_log /dev/stdout cloudfoundry',
        'default_type application/octet-stream',
        'include mime.types',
        'sendfile on',
    )
    http.extend(out.http)
    http.add(
        'tcp_nopush on',
        'keepalive_timeout 30',
        'port_in_redirect off',
        'server_tokens off',
    )

    server = http.block('server')
    server.extend(out.server)
    server.block('location /').extend(out.content)
    server.extend(out.locations)
    return conf


def generate(inp: GeneratorInput) -> GeneratedConfig:
    """Build the server configuration. Pure: no filesystem or logging.

    Raises:
        ConfigurationConflict: Two directives claim the same resource
    """
    out = Fragments()
    for _name, contribute in CONTRIBUTORS:
        contribute(inp, out)

    return GeneratedConfig(
        text=render(_assemble(out)),
        features=tuple(out.features),
        warnings=tuple(_warnings(inp)),
        placeholders=tuple(out.placeholders),
    )
