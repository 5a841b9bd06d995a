"""
Creates creatures from ``.m2`` model assets.

Walks a module's assets directory and, for every model found, registers a
CreatureModelData record, a CreatureDisplayInfo record and a
``creature_template`` row that uses it.  The new rows are not part of the
base index, so the scanner reports them as a :class:`CreatureOverlay` that
the map writer merges into the addon tables.

Usage::

    scanner = AssetScanner(dbc_dir, 'my-module', 'modules/my-module/assets',
                           index, SQLGenerator(start_entry=900000))
    overlay = scanner.scan()
"""

import logging
import os
import re

from .dbc_injector import DBCSession
from .id_registry import IDRegistry
from .overlay import CreatureOverlay
from .records import normalize_path
from .sql_generator import (UNIT_FLAG_IMMUNE_TO_NPC, CREATURE_TYPE_MECHANICAL,
                            UNIT_CLASS_WARRIOR, CREATURE_RANK_NORMAL)

log = logging.getLogger(__name__)


DEFAULT_MODULE_NAME = 'creature-models'

# Animation played by the emote attached to every generated creature
HOLD_ANIMATION_ID = 158

# Registry name suffixes, after the asset's safe name
_MODEL_SUFFIX = '_CreatureModelData'
_DISPLAY_SUFFIX = '_CreatureDisplayInfo'
_TEMPLATE_SUFFIX = '_CreatureTemplate'
_SPAWN_SUFFIX = '_Spawn'

# CreatureModelData values for generated models
_MODEL_FIELDS = {
    'flags': 3,
    'size_class': 1,
    'model_scale': 1.0,
    'blood_id': -1,
    'footprint_texture_id': -1,
    'footprint_texture_length': 18.0,
    'collision_height': 2.08,
    'collision_width': 0.458,
    'world_effect_scale': 1.0,
    'attached_effect_scale': 1.0,
    'sound_id': 247,
}

# CreatureDisplayInfo values for generated displays
_DISPLAY_FIELDS = {
    'creature_model_scale': 0.5,
    'creature_model_alpha': 255,
    'blood_level': 1,
}

_M2_SUFFIX_RE = re.compile(r'\.m2$', re.IGNORECASE)


class SpawnGrid:
    """
    Lays out spawns in rows, starting at (x0, y0) and stepping dx per
    creature; every ``per_row`` creatures a new row starts dy further.
    """

    __slots__ = ('map', 'x0', 'y0', 'z', 'o', 'dx', 'dy', 'per_row')

    def __init__(self, map=13, x0=-14.550729, y0=-6.558920, z=-144.708649,
                 o=4.706141, dx=-3.0, dy=10.0, per_row=10):
        self.map = map
        self.x0 = x0
        self.y0 = y0
        self.z = z
        self.o = o
        self.dx = dx
        self.dy = dy
        self.per_row = per_row

    def position(self, index):
        """(x, y, z, o) of the *index*-th spawn."""
        row, col = divmod(index, self.per_row)
        return (self.x0 + col * self.dx, self.y0 + row * self.dy, self.z, self.o)


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

def walk_model_files(assets_root):
    """
    Yield every ``.m2`` file under *assets_root*, recursively, in sorted
    order.  Directories that cannot be listed are skipped.
    """
    def _on_error(err):
        log.warning("Cannot read %s: %s", err.filename, err)

    for dirpath, dirnames, filenames in os.walk(assets_root, onerror=_on_error):
        dirnames.sort()
        for name in sorted(filenames):
            if name.lower().endswith('.m2'):
                yield os.path.join(dirpath, name)


def _relative(assets_root, path):
    return os.path.relpath(path, assets_root).replace(os.sep, '/')


def to_client_model_path(assets_root, path):
    """
    Client path of a model asset: relative to the assets root, backslash
    separated, ``.m2`` replaced by ``.mdx``.
    """
    rel = _relative(assets_root, path).replace('/', '\\')
    return _M2_SUFFIX_RE.sub('.mdx', rel)


def safe_name_from_path(assets_root, path):
    """Identifier derived from the relative asset path: ``[A-Za-z0-9_]`` only."""
    rel = _M2_SUFFIX_RE.sub('', _relative(assets_root, path))
    rel = re.sub(r'[\\/]', '_', rel)
    return re.sub(r'[^A-Za-z0-9_]', '_', rel)


def find_invalid_templates(templates, display_ids):
    """
    Templates that cannot be rendered: no display id at all, or a display
    id missing from *display_ids*.
    """
    invalid = []
    for tpl in templates:
        ids = tpl.valid_display_ids()
        if not ids or any(d not in display_ids for d in ids):
            invalid.append(tpl)
    return invalid


# ---------------------------------------------------------------------------
# Scanner
# ---------------------------------------------------------------------------

class AssetScanner:
    """
    Registers one creature per model asset.

    IDs handed out are recorded in *registry* under the module name and
    the asset's safe name.  On a later run an asset whose display is still
    in the DBCs reuses its display, entry and spawn GUID, so rerunning over
    the same assets adds no DBC records and regenerates the same rows.

    Args:
        dbc_dir: DBFilesClient directory receiving the new DBC records.
        module_name: Prefix of the generated names.
        assets_root: Directory scanned for ``.m2`` files.
        index: Built :class:`CreatureMapIndex`, used to copy the textures of
            existing displays sharing the model path and to check that
            recorded displays still exist.
        sql_generator: :class:`SQLGenerator` receiving the server rows.
        enable_spawns: Also spawn each creature on *spawn_grid*.
        spawn_grid: :class:`SpawnGrid`; defaults to ``SpawnGrid()``.
        registry: :class:`IDRegistry`; defaults to an in-memory one.
    """

    def __init__(self, dbc_dir, module_name, assets_root, index, sql_generator,
                 enable_spawns=False, spawn_grid=None, registry=None):
        self.dbc_dir = dbc_dir
        self.module_name = module_name or DEFAULT_MODULE_NAME
        self.assets_root = assets_root
        self.index = index
        self.sql = sql_generator
        self.enable_spawns = enable_spawns
        self.spawn_grid = spawn_grid or SpawnGrid()
        self.registry = registry if registry is not None else IDRegistry()

        self._seen_names = set()
        self.created = []   # list of (entry, display_id, client_path)
        self.reused = 0

    def scan(self):
        """
        Create creatures for all new models and return their overlay.

        Returns an empty overlay when the assets root does not exist.
        """
        overlay = CreatureOverlay()
        if not os.path.isdir(self.assets_root):
            log.info("Assets root %s does not exist; skipping creature creation. "
                     "Maps are still built from the existing DBC data.",
                     self.assets_root)
            return overlay

        self.sql.reserve('creatures', self.registry.values(_TEMPLATE_SUFFIX))
        self.sql.reserve('spawns', self.registry.values(_SPAWN_SUFFIX))

        with DBCSession(self.dbc_dir) as dbc:
            emote_id = dbc.find_emote(HOLD_ANIMATION_ID, spec_proc=2)
            if emote_id is None:
                emote_id = dbc.add_emote(HOLD_ANIMATION_ID, spec_proc=2)
            log.info("Scanning recursively for .m2 files under %s ...", self.assets_root)

            for path in walk_model_files(self.assets_root):
                self._create_creature(dbc, path, emote_id, overlay)

        self.registry.save()
        log.info("Finished: %d creature entries from .m2 files under %s "
                 "(%d reused from an earlier run)",
                 len(self.created), self.assets_root, self.reused)
        return overlay

    def _recorded_display(self, safe_base, addon_path):
        """Display recorded for *safe_base* if the DBCs still render it."""
        display_id = self.registry.get(self.module_name, safe_base + _DISPLAY_SUFFIX)
        if display_id is None:
            return None
        if self.index.paths.get(display_id) != addon_path:
            log.warning("Recorded display %d for %s is missing or changed; "
                        "registering a new one", display_id, addon_path)
            return None
        return display_id

    def _recorded_entry(self, safe_base, display_id):
        """Entry recorded for *safe_base*, unless another creature now owns it."""
        entry = self.registry.get(self.module_name, safe_base + _TEMPLATE_SUFFIX)
        if entry is None:
            return None
        owner_display = self.index.display_id_map.get(entry)
        if owner_display is not None and owner_display != display_id:
            log.warning("Recorded entry %d is used by display %d; allocating a new one",
                        entry, owner_display)
            return None
        return entry

    def _create_creature(self, dbc, path, emote_id, overlay):
        file_base = os.path.splitext(os.path.basename(path))[0]
        safe_base = safe_name_from_path(self.assets_root, path)
        if safe_base in self._seen_names:
            log.info("Skipping duplicate: %s", file_base)
            return None
        self._seen_names.add(safe_base)

        client_path = to_client_model_path(self.assets_root, path)
        addon_path = normalize_path(client_path)

        display_id = self._recorded_display(safe_base, addon_path)
        if display_id is not None:
            textures = list(self.index.textures.get(display_id, []))
            self.reused += 1
        else:
            model_id = dbc.add_creature_model(client_path, **_MODEL_FIELDS)
            textures = self.index.textures_for_model_path(addon_path) or []
            display_id = dbc.add_creature_display(
                model_id, textures=textures[:3], **_DISPLAY_FIELDS)
            self.registry.set(self.module_name, safe_base + _MODEL_SUFFIX, model_id)
            self.registry.set(self.module_name, safe_base + _DISPLAY_SUFFIX, display_id)
        self.sql.add_model_info(display_id)

        creature_def = {
            'name': file_base,
            'subname': self.module_name,
            'modelid1': display_id,
            'faction': 35,
            'unit_flags': UNIT_FLAG_IMMUNE_TO_NPC,
            'dynamicflags': 0,
            'type': CREATURE_TYPE_MECHANICAL,
            'minlevel': 1,
            'maxlevel': 1,
            'health_modifier': 100.0,
            'ai_name': '',
            'speed_walk': 1.0,
            'speed_run': 1.0,
            'scale': 2.0,
            'regen_health': 1,
            'unit_class': UNIT_CLASS_WARRIOR,
            'rank': CREATURE_RANK_NORMAL,
        }
        entry = self._recorded_entry(safe_base, display_id)
        if entry is not None:
            creature_def['entry'] = entry
        entry = self.sql.add_creature(creature_def)
        self.registry.set(self.module_name, safe_base + _TEMPLATE_SUFFIX, entry)
        self.sql.add_template_addon(entry, emote=emote_id)

        if self.enable_spawns:
            grid = self.spawn_grid
            guid = self.sql.add_spawn({
                'entry': entry,
                'guid': self.registry.get(self.module_name, safe_base + _SPAWN_SUFFIX),
                'map': grid.map,
                'position': grid.position(len(self.created)),
            })
            self.registry.set(self.module_name, safe_base + _SPAWN_SUFFIX, guid)

        overlay.entry_to_display_id[entry] = display_id
        overlay.display_id_to_path[display_id] = addon_path
        if textures:
            overlay.display_id_to_textures[display_id] = list(textures)

        self.created.append((entry, display_id, client_path))
        log.debug("Created creature %d (display %d) for %s", entry, display_id, client_path)
        return entry
