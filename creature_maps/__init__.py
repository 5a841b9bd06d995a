"""
Creature Maps - lookup table generator for the Creature Model Viewer addon
(WoW WotLK 3.3.5a).

Reads CreatureModelData.dbc, CreatureDisplayInfo.dbc and creature_template
rows, optionally creates creatures for model assets, and writes the four Lua
tables the addon reads:

    CreatureDisplayIdMap[entry]           = displayId
    CreatureModelPathMap[displayId]       = "path/to/model.m2"
    CreatureVariantsMap[entry]            = { displayId1, ... }
    CreatureDisplayTexturesMap[displayId] = { "Texture1", "Texture2", "Texture3" }
"""

import logging
import os

from .dbc_injector import (DBCInjector, DBCSession, register_creature_model,
                           register_creature_display, register_emote)
from .id_registry import IDRegistry
from .records import (ModelRecord, DisplayRecord, TemplateRecord, normalize_path,
                      read_model_records, read_display_records,
                      read_template_records, read_world_sql,
                      template_records_from_rows, max_spawn_guid)
from .lua_table import LuaTable, format_entry, format_lua_value, escape_lua_string
from .map_builder import CreatureMapBuilder, CreatureMapIndex, build_index
from .overlay import CreatureOverlay, merge
from .map_writer import (write_display_id_map, write_model_path_map,
                         write_variants_map, write_textures_map, write_all_maps)
from .sql_generator import SQLGenerator, import_sql
from .asset_scanner import (AssetScanner, SpawnGrid, DEFAULT_MODULE_NAME,
                            find_invalid_templates)
from .addon_generator import generate_addon_toc

log = logging.getLogger(__name__)

DEFAULT_START_ENTRY = 90000
ID_REGISTRY_FILE = 'creature_ids.json'


def generate_creature_maps(dbc_dir, template_sql, output_dir, assets_root=None,
                           module_name=DEFAULT_MODULE_NAME, sql_output=None,
                           start_entry=None, start_guid=None, enable_spawns=False,
                           cleanup_invalid=True, write_toc=True, id_registry=None):
    """
    High-level API: build and write the Creature Model Viewer maps.

    Phases: load records, drop templates with broken display references,
    build the index, create creatures for model assets, write the four maps
    (merging the new creatures in), then the SQL and the addon TOC.

    Running again over the same inputs gives the same maps: IDs handed out
    to assets are kept in *id_registry* and reused while their DBC records
    still exist.

    Args:
        dbc_dir: DBFilesClient directory with CreatureModelData.dbc and
                 CreatureDisplayInfo.dbc.  New records are appended here.
        template_sql: SQL file with ``creature_template`` INSERT statements.
                      ``creature`` rows in it are used to pick spawn GUIDs.
        output_dir: Addon directory receiving the ``.lua`` files.
        assets_root: Optional directory scanned for ``.m2`` models.
        module_name: Name used for generated creatures.
        sql_output: Where to write generated SQL.  Defaults to
                    ``<output_dir>/creature_models.sql`` when any SQL was
                    generated.
        start_entry: First creature entry for new creatures.  Defaults to
                     one past the highest existing entry (minimum 90000).
        start_guid: First GUID for new spawns.  Defaults to one past the
                    highest imported spawn GUID, and at least *start_entry*.
        enable_spawns: Spawn every created creature on the default grid.
        cleanup_invalid: Remove templates referencing unknown displays.
        write_toc: Write ``CreatureModelViewer.toc`` next to the maps.
        id_registry: JSON file of IDs handed out to assets.  Defaults to
                     ``<dbc_dir>/creature_ids.json``.

    Returns:
        dict: {
            'index': CreatureMapIndex,
            'overlay': CreatureOverlay,
            'written': list[str],
            'removed_entries': list[int],
            'sql_path': str or None,
            'toc_path': str or None,
        }
    """
    models = read_model_records(dbc_dir)
    displays = read_display_records(dbc_dir)
    world = read_world_sql(template_sql)
    templates = template_records_from_rows(world['creatures'])
    log.info("Loaded %d creature templates, %d models, %d displays",
             len(templates), len(models), len(displays))

    if start_entry is None:
        start_entry = max([DEFAULT_START_ENTRY] + [t.entry + 1 for t in templates])
    if start_guid is None:
        start_guid = max(start_entry, max_spawn_guid(world['spawns']) + 1)
    sql = SQLGenerator(start_entry=start_entry, start_guid=start_guid)
    sql.reserve('creatures', [t.entry for t in templates])

    result = {
        'index': None,
        'overlay': CreatureOverlay(),
        'written': [],
        'removed_entries': [],
        'sql_path': None,
        'toc_path': None,
    }

    # Phase 1: drop templates that cannot be rendered
    if cleanup_invalid:
        display_ids = set(d.id for d in displays)
        invalid = find_invalid_templates(templates, display_ids)
        if invalid:
            removed = [t.entry for t in invalid]
            for entry in removed:
                log.warning("Deleted invalid creature template (entry: %d)", entry)
            log.warning("Cleaned up %d invalid creature(s) with broken model refs.",
                        len(invalid))
            sql.delete_creatures(removed)
            removed_set = set(removed)
            templates = [t for t in templates if t.entry not in removed_set]
            result['removed_entries'] = removed

    # Phase 2: index over the existing records
    index = CreatureMapBuilder(models, displays, templates).build()
    result['index'] = index

    # Phase 3: creatures from model assets
    if assets_root:
        if id_registry is None:
            id_registry = os.path.join(dbc_dir, ID_REGISTRY_FILE)
        scanner = AssetScanner(dbc_dir, module_name, assets_root, index, sql,
                               enable_spawns=enable_spawns,
                               registry=IDRegistry(id_registry))
        result['overlay'] = scanner.scan()

    # Phase 4: addon files
    result['written'] = write_all_maps(index, output_dir, result['overlay'])
    if write_toc:
        result['toc_path'] = generate_addon_toc(output_dir)

    if sql.has_sql():
        if sql_output is None:
            sql_output = os.path.join(output_dir, 'creature_models.sql')
        result['sql_path'] = sql.write_sql(sql_output)

    return result
