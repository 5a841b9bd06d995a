"""
Writes the ``.toc`` file that makes the client load the generated maps.

The map tables must load before the viewer's own Lua code, so the
generated table of contents lists the four map files first, followed by
any additional addon files.
"""

import logging
import os

from jinja2 import Environment, FileSystemLoader

from .map_builder import MAP_NAMES

log = logging.getLogger(__name__)

# WotLK 3.3.5a interface version
INTERFACE_VERSION = 30300

DEFAULT_ADDON_NAME = 'CreatureModelViewer'


def _environment():
    template_dir = os.path.join(os.path.dirname(__file__), 'templates', 'addon')
    return Environment(
        loader=FileSystemLoader(template_dir),
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
    )


def render_toc(name=DEFAULT_ADDON_NAME, title=None, notes=None, author=None,
               version='1.0', extra_files=None):
    """Render the table of contents text."""
    files = ['{}.lua'.format(n) for n in MAP_NAMES]
    for filename in extra_files or []:
        if filename not in files:
            files.append(filename)

    return _environment().get_template('addon.toc.jinja2').render(
        interface=INTERFACE_VERSION,
        title=title or name,
        notes=notes,
        author=author,
        version=version,
        files=files,
    )


def generate_addon_toc(output_dir, name=DEFAULT_ADDON_NAME, **kwargs):
    """
    Write ``<name>.toc`` into *output_dir*.

    Keyword arguments are passed to :func:`render_toc`.

    Returns:
        str: Path of the written file.
    """
    os.makedirs(output_dir, exist_ok=True)
    toc_path = os.path.join(output_dir, '{}.toc'.format(name))
    with open(toc_path, 'w', encoding='utf-8', newline='\n') as f:
        f.write(render_toc(name=name, **kwargs))
    log.info("Wrote addon TOC: %s", toc_path)
    return toc_path
