"""
Builds the four Creature Model Viewer lookup tables from creature records.

    CreatureDisplayIdMap[entry]             = displayId
    CreatureModelPathMap[displayId]         = "path/to/model.m2"
    CreatureVariantsMap[entry]              = { displayId1, ... }
    CreatureDisplayTexturesMap[displayId]   = { "Texture1", "Texture2", "Texture3" }

Usage::

    from creature_maps.map_builder import CreatureMapBuilder

    builder = CreatureMapBuilder(models, displays, templates)
    index = builder.build()          # computed once, then reused
    index.model_path_map.render()
"""

import logging

from .lua_table import LuaTableBuilder
from .records import normalize_path

log = logging.getLogger(__name__)


DISPLAY_ID_MAP = 'CreatureDisplayIdMap'
MODEL_PATH_MAP = 'CreatureModelPathMap'
VARIANTS_MAP = 'CreatureVariantsMap'
TEXTURES_MAP = 'CreatureDisplayTexturesMap'

MAP_NAMES = (DISPLAY_ID_MAP, MODEL_PATH_MAP, VARIANTS_MAP, TEXTURES_MAP)

_HEADERS = {
    DISPLAY_ID_MAP: (
        "-- Auto-generated from creature_template (modelid1). "
        "Run the creature map generator to refresh.",
    ),
    MODEL_PATH_MAP: (
        "-- Auto-generated from CreatureDisplayInfo.dbc + CreatureModelData.dbc.",
    ),
    VARIANTS_MAP: (
        "-- Auto-generated. Entries with multiple modelids (texture variants) only.",
    ),
    TEXTURES_MAP: (
        "-- Auto-generated from CreatureDisplayInfo.dbc Texture1/Texture2/Texture3. "
        "Run the creature map generator to refresh.",
    ),
}


class CreatureMapIndex:
    """
    Result of one index build.  Treat as read-only.

    Attributes:
        paths:                  display id -> normalized model path.
        textures:               display id -> list of texture names.
        textures_by_model_path: normalized path -> textures of the first
                                display seen for that path.
        display_id_map, model_path_map, variants_map, textures_map:
                                The four :class:`LuaTable` outputs.
    """

    def __init__(self, paths, textures, textures_by_model_path,
                 display_id_map, model_path_map, variants_map, textures_map):
        self.paths = paths
        self.textures = textures
        self.textures_by_model_path = textures_by_model_path
        self.display_id_map = display_id_map
        self.model_path_map = model_path_map
        self.variants_map = variants_map
        self.textures_map = textures_map

    def tables(self):
        """The four tables in file order."""
        return (self.display_id_map, self.model_path_map,
                self.variants_map, self.textures_map)

    def table(self, name):
        for t in self.tables():
            if t.name == name:
                return t
        raise KeyError(name)

    def textures_for_model_path(self, model_path):
        """Textures known for *model_path* (any case/separator), or None."""
        return self.textures_by_model_path.get(normalize_path(model_path))


def _index_models(models):
    paths = {}
    for model in models:
        if model.path:
            paths[model.id] = normalize_path(model.path)
    return paths


def _index_displays(displays, model_paths):
    paths = {}
    textures = {}
    textures_by_model_path = {}
    for display in displays:
        path = model_paths.get(display.model_id)
        if path:
            paths[display.id] = path
        tex = display.texture_list()
        if tex:
            textures[display.id] = tex
            if path and path not in textures_by_model_path:
                textures_by_model_path[path] = tex
    return paths, textures, textures_by_model_path


def build_index(models, displays, templates):
    """
    Join model, display and template records into a :class:`CreatureMapIndex`.

    Templates are processed in the order given.  A display id is written to
    the path and texture tables once, at its first reference; displays no
    template references follow in ascending id order.  Missing cross
    references only omit lines.
    """
    model_paths = _index_models(models)
    paths, textures, textures_by_model_path = _index_displays(displays, model_paths)

    display_ids = LuaTableBuilder(DISPLAY_ID_MAP, _HEADERS[DISPLAY_ID_MAP])
    path_map = LuaTableBuilder(MODEL_PATH_MAP, _HEADERS[MODEL_PATH_MAP])
    variants = LuaTableBuilder(VARIANTS_MAP, _HEADERS[VARIANTS_MAP])
    texture_map = LuaTableBuilder(TEXTURES_MAP, _HEADERS[TEXTURES_MAP])

    skipped = 0
    for tpl in templates:
        ids = tpl.valid_display_ids()
        if not ids:
            skipped += 1
            continue

        display_ids.add(tpl.entry, ids[0])

        for display_id in ids:
            if display_id in paths:
                path_map.add(display_id, paths[display_id])

        if len(ids) > 1:
            variants.add(tpl.entry, ids)

        for display_id in ids:
            if display_id in textures:
                texture_map.add(display_id, textures[display_id])

    # Displays not referenced by any template
    for display_id in sorted(paths):
        path_map.add(display_id, paths[display_id])
    for display_id in sorted(textures):
        texture_map.add(display_id, textures[display_id])

    index = CreatureMapIndex(
        paths=paths,
        textures=textures,
        textures_by_model_path=textures_by_model_path,
        display_id_map=display_ids.build(),
        model_path_map=path_map.build(),
        variants_map=variants.build(),
        textures_map=texture_map.build(),
    )

    log.info(
        "Built creature maps: %d entries, %d paths, %d variants, %d textures "
        "(%d templates without models)",
        len(index.display_id_map), len(index.model_path_map),
        len(index.variants_map), len(index.textures_map), skipped,
    )
    return index


class CreatureMapBuilder:
    """
    Builds the index on first use and returns the same index afterwards.

    Holds the input record collections; :meth:`build` never re-reads them
    once an index exists.
    """

    def __init__(self, models, displays, templates):
        self.models = models
        self.displays = displays
        self.templates = templates
        self._index = None

    @classmethod
    def from_sources(cls, dbc_dir, template_sql):
        """Load records from a DBFilesClient directory and a creature_template SQL file."""
        from .records import (read_model_records, read_display_records,
                              read_template_records)
        return cls(read_model_records(dbc_dir),
                   read_display_records(dbc_dir),
                   read_template_records(template_sql))

    def build(self):
        if self._index is None:
            self._index = build_index(self.models, self.displays, self.templates)
        return self._index

    def textures_for_model_path(self, model_path):
        return self.build().textures_for_model_path(model_path)
