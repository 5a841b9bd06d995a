"""
Writes the Creature Model Viewer tables into an addon directory.

Each ``write_*`` function takes a built index, merges an optional overlay
into its table and writes ``<TableName>.lua``.  The output directory is
created when missing; filesystem errors propagate to the caller.
"""

import logging
import os

from .overlay import merge

log = logging.getLogger(__name__)


def _write_table(table, output_dir, unit='entries'):
    os.makedirs(output_dir, exist_ok=True)
    filepath = os.path.join(output_dir, table.filename)
    with open(filepath, 'w', encoding='utf-8', newline='\n') as f:
        f.write(table.render())
    log.info("Written: %s (%d %s)", table.filename, len(table), unit)
    return filepath


def write_display_id_map(index, output_dir, extra=None):
    """Write CreatureDisplayIdMap.lua; *extra* maps entry -> display id."""
    return _write_table(merge(index.display_id_map, extra), output_dir)


def write_model_path_map(index, output_dir, extra=None):
    """Write CreatureModelPathMap.lua; *extra* maps display id -> path."""
    return _write_table(merge(index.model_path_map, extra), output_dir)


def write_variants_map(index, output_dir):
    """Write CreatureVariantsMap.lua."""
    return _write_table(index.variants_map, output_dir, 'multi-skin entries')


def write_textures_map(index, output_dir, extra=None):
    """Write CreatureDisplayTexturesMap.lua; *extra* maps display id -> textures."""
    return _write_table(merge(index.textures_map, extra), output_dir)


def write_all_maps(index, output_dir, overlay=None):
    """
    Write all four tables.

    Args:
        index: :class:`~creature_maps.map_builder.CreatureMapIndex`.
        output_dir: Addon directory.
        overlay: Optional :class:`~creature_maps.overlay.CreatureOverlay`.

    Returns:
        list[str]: Written file paths in table order.
    """
    if overlay is None:
        entries = paths = textures = None
    else:
        entries = overlay.entry_to_display_id
        paths = overlay.display_id_to_path
        textures = overlay.display_id_to_textures

    return [
        write_display_id_map(index, output_dir, entries),
        write_model_path_map(index, output_dir, paths),
        write_variants_map(index, output_dir),
        write_textures_map(index, output_dir, textures),
    ]
