"""Write generated configuration into the build tree.

Layout under <build>/nginx/conf:
    nginx.conf.template  rendered to nginx.conf at launch
    mime.types
    .htpasswd            only with basic auth
"""

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from common import atomic_write_text
from credentials import Credentials, write_htpasswd
from errors import ConfigurationConflict, OutputWriteError
from generator.contributors import HTPASSWD, GeneratedConfig
from generator.mime_types import MIME_TYPES
from reporting.buildlog import begin_step

logger = logging.getLogger(__name__)

CONF_DIR = Path('nginx') / 'conf'
TEMPLATE_NAME = 'nginx.conf.template'
CONF_NAME = 'nginx.conf'
MIME_NAME = 'mime.types'

WARN_CUSTOM_NGINX_CONF = (
    "overriding nginx.conf is deprecated and highly discouraged, as it breaks the "
    "functionality of the Staticfile and Staticfile.auth configuration directives. "
    "Please use the NGINX buildpack available at: https://github.com/cloudfoundry/nginx-buildpack"
)

# Older overrides carry ERB tags such as <%= ENV["PORT"] %>
_ERB_ENV = re.compile(r"""<%=\s*ENV\[\s*["'](\w+)["']\s*\]\s*%>""")
_ERB_TAG = re.compile(r"<%.*?%>", re.S)


def convert_erb_placeholders(text: str, placeholders: tuple[str, ...]) -> str:
    """Rewrite <%= ENV["NAME"] %> to ${NAME} for placeholders rendered at launch.

    Raises:
        ConfigurationConflict: Any other ERB tag remains, since nothing renders it
    """
    def substitute(match: re.Match) -> str:
        name = match.group(1)
        return f'${{{name}}}' if name in placeholders else match.group(0)

    converted = _ERB_ENV.sub(substitute, text)
    leftover = sorted(set(_ERB_TAG.findall(converted)))
    if leftover:
        raise ConfigurationConflict(
            f"custom {CONF_NAME} uses template tags that are not rendered at launch: {', '.join(leftover)}"
        )
    return converted


@dataclass
class WrittenConfig:
    """Paths of the files placed in the build tree."""
    conf_dir: Path
    template: Path
    mime_types: Path
    htpasswd: Optional[Path] = None
    custom_conf: bool = False


def write_generated(
    build_dir: Path,
    generated: GeneratedConfig,
    credentials: Optional[Credentials] = None,
    public_dir: Optional[Path] = None,
) -> WrittenConfig:
    """Place generated files, honouring overrides shipped in the served tree.

    A `nginx.conf` or `mime.types` at the top of public_dir replaces the
    generated file and is removed from the served tree. ERB placeholders in a
    custom nginx.conf are converted to the launch-time form.

    Raises:
        ConfigurationConflict: A custom nginx.conf uses ERB it cannot keep
        OutputWriteError: If any file cannot be written
    """
    build_dir = Path(build_dir)
    public_dir = Path(public_dir) if public_dir else build_dir / 'public'
    conf_dir = build_dir / CONF_DIR
    begin_step(logger, "Configuring nginx")

    written = WrittenConfig(
        conf_dir=conf_dir,
        template=conf_dir / TEMPLATE_NAME,
        mime_types=conf_dir / MIME_NAME,
    )

    try:
        conf_dir.mkdir(parents=True, exist_ok=True)

        custom_conf = public_dir / CONF_NAME
        if custom_conf.is_file():
            logger.warning(WARN_CUSTOM_NGINX_CONF)
            text = convert_erb_placeholders(custom_conf.read_text(encoding='utf-8'), generated.placeholders)
            atomic_write_text(written.template, text)
            custom_conf.unlink()
            written.custom_conf = True
        else:
            atomic_write_text(written.template, generated.text)

        custom_mime = public_dir / MIME_NAME
        if custom_mime.is_file():
            logger.info(f"Using {MIME_NAME} from {public_dir.name}")
            os.replace(custom_mime, written.mime_types)
        else:
            atomic_write_text(written.mime_types, MIME_TYPES)

        if credentials:
            written.htpasswd = conf_dir / HTPASSWD
            write_htpasswd(credentials, written.htpasswd)
    except OSError as e:
        # Only the path and errno text; never file contents
        raise OutputWriteError(f"Unable to write nginx configuration to {conf_dir}: {e.strerror or e}") from None

    logger.debug(f"Wrote {written.template}")
    return written
