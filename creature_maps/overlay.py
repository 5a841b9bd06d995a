"""
Additive merging of externally produced entries into generated tables.

The asset scanner creates new creatures after the base index was built.
Their entries reach the addon files through a :class:`CreatureOverlay`,
merged with :func:`merge`: keys already present in a table always keep
their generated value.
"""

import logging

log = logging.getLogger(__name__)


def merge(table, overlay):
    """
    Return *table* with the entries of *overlay* appended.

    Args:
        table: A :class:`~creature_maps.lua_table.LuaTable`.
        overlay: Mapping of int key -> value (int, str or list of str).

    Returns:
        The same *table* object when *overlay* is empty, otherwise a new
        table.  Keys already in *table* are skipped, as are empty values.
        New keys are appended in ascending order.
    """
    if not overlay:
        return table

    pairs = []
    seen = set(table.keys)
    for key in sorted(overlay):
        value = overlay[key]
        if key in seen:
            log.debug("%s: keeping existing entry for %d", table.name, key)
            continue
        if value is None or (isinstance(value, (list, tuple, str)) and len(value) == 0):
            continue
        seen.add(key)
        pairs.append((key, value))

    if not pairs:
        return table
    return table.with_entries(pairs)


class CreatureOverlay:
    """
    Entries for creatures created outside the base index.

    Attributes:
        entry_to_display_id:    creature entry -> display id.
        display_id_to_path:     display id -> normalized model path.
        display_id_to_textures: display id -> list of texture names.
    """

    def __init__(self, entry_to_display_id=None, display_id_to_path=None,
                 display_id_to_textures=None):
        self.entry_to_display_id = dict(entry_to_display_id or {})
        self.display_id_to_path = dict(display_id_to_path or {})
        self.display_id_to_textures = dict(display_id_to_textures or {})

    def is_empty(self):
        return not (self.entry_to_display_id or self.display_id_to_path
                    or self.display_id_to_textures)

    def __repr__(self):
        return "CreatureOverlay(entries={}, paths={}, textures={})".format(
            len(self.entry_to_display_id), len(self.display_id_to_path),
            len(self.display_id_to_textures))
