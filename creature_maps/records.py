"""
Creature record types and loaders.

Three record collections feed the map generator:

    ModelRecord     CreatureModelData.dbc   (ID, ModelName)
    DisplayRecord   CreatureDisplayInfo.dbc (ID, ModelID, TextureVariation[3])
    TemplateRecord  creature_template       (entry, modelid1..modelid4)

The DBC loaders read client files through :class:`DBCInjector`; the
template loader reads an AzerothCore SQL dump through :func:`import_sql`.
"""

import logging
import os

from .dbc_injector import (DBCInjector, MODEL_DATA_DBC, MODEL_DATA_NAME_FIELD,
                           DISPLAY_INFO_DBC, DISPLAY_INFO_MODEL_FIELD,
                           DISPLAY_INFO_TEXTURE_FIELDS)
from .sql_generator import import_sql

log = logging.getLogger(__name__)

# creature_template columns holding display ids, in slot order
MODEL_COLUMNS = ('modelid1', 'modelid2', 'modelid3', 'modelid4')


def normalize_path(path):
    """
    Canonical form of a model path: forward slashes, no leading slash,
    lower case.  Used as the join key between model records and asset paths.
    """
    if not path:
        return ''
    return path.replace('\\', '/').lstrip('/').lower()


class ModelRecord:
    """One CreatureModelData row."""

    __slots__ = ('id', 'path')

    def __init__(self, id, path=''):
        self.id = id
        self.path = path or ''

    def __repr__(self):
        return "ModelRecord({}, {!r})".format(self.id, self.path)


class DisplayRecord:
    """
    One CreatureDisplayInfo row.

    Attributes:
        id:       Display ID.
        model_id: CreatureModelData ID.
        textures: The three raw TextureVariation slots (may be empty).
    """

    __slots__ = ('id', 'model_id', 'textures')

    def __init__(self, id, model_id, textures=()):
        self.id = id
        self.model_id = model_id
        self.textures = tuple(textures)[:3]

    def texture_list(self):
        """Non-empty, trimmed texture names in slot order."""
        result = []
        for tex in self.textures:
            tex = (tex or '').strip()
            if tex:
                result.append(tex)
        return result

    def __repr__(self):
        return "DisplayRecord({}, model={}, textures={!r})".format(
            self.id, self.model_id, self.textures)


class TemplateRecord:
    """
    One creature_template row reduced to its display references.

    Attributes:
        entry:       creature_template entry.
        display_ids: modelid1..modelid4, 0 meaning "no model".
    """

    __slots__ = ('entry', 'display_ids')

    def __init__(self, entry, display_ids=()):
        self.entry = entry
        self.display_ids = tuple(display_ids)[:4]

    def valid_display_ids(self):
        return [d for d in self.display_ids if d and d > 0]

    def __repr__(self):
        return "TemplateRecord({}, {!r})".format(self.entry, self.display_ids)


# ---------------------------------------------------------------------------
# Loaders
# ---------------------------------------------------------------------------

def _open_dbc(dbc_dir, dbc_name):
    filepath = os.path.join(dbc_dir, dbc_name)
    if not os.path.isfile(filepath):
        log.warning("%s not found in %s; treating it as empty", dbc_name, dbc_dir)
        return None
    return DBCInjector(filepath)


def read_model_records(dbc_dir):
    """Read every CreatureModelData row from *dbc_dir*."""
    dbc = _open_dbc(dbc_dir, MODEL_DATA_DBC)
    if dbc is None:
        return []

    records = []
    for i, model_id in dbc.iter_ids():
        records.append(ModelRecord(
            model_id, dbc.get_record_string(i, MODEL_DATA_NAME_FIELD)))

    log.info("Loaded %d creature models from %s", len(records), dbc_dir)
    return records


def read_display_records(dbc_dir):
    """Read every CreatureDisplayInfo row from *dbc_dir*."""
    dbc = _open_dbc(dbc_dir, DISPLAY_INFO_DBC)
    if dbc is None:
        return []

    records = []
    for i, display_id in dbc.iter_ids():
        records.append(DisplayRecord(
            display_id,
            dbc.get_record_field(i, DISPLAY_INFO_MODEL_FIELD),
            [dbc.get_record_string(i, f) for f in DISPLAY_INFO_TEXTURE_FIELDS],
        ))

    log.info("Loaded %d creature displays from %s", len(records), dbc_dir)
    return records


def _as_int(value):
    if value is None:
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def template_records_from_rows(rows):
    """
    Convert parsed ``creature_template`` row dicts into TemplateRecords.

    Rows without an ``entry`` column are ignored; missing model columns
    count as 0.
    """
    records = []
    for row in rows:
        if row.get('entry') is None:
            log.debug("Skipping creature_template row without entry: %r", row)
            continue
        records.append(TemplateRecord(
            _as_int(row['entry']),
            [_as_int(row.get(col)) for col in MODEL_COLUMNS],
        ))
    return records


def read_world_sql(sql_path):
    """
    Import the creature tables of an AzerothCore SQL file.

    Returns the :func:`import_sql` categories, all empty when *sql_path* is
    None or does not exist.
    """
    if not sql_path or not os.path.isfile(sql_path):
        log.warning("creature_template SQL %s not found; no templates loaded", sql_path)
        return {'creatures': [], 'template_addons': [], 'model_info': [], 'spawns': []}
    return import_sql(sql_path)


def read_template_records(sql_path):
    """
    Read creature templates from an AzerothCore SQL file, in file order.

    Returns an empty list when *sql_path* is None or does not exist.
    """
    records = template_records_from_rows(read_world_sql(sql_path)['creatures'])
    if records:
        log.info("Loaded %d creature templates from %s", len(records), sql_path)
    return records


def max_spawn_guid(rows):
    """Highest ``guid`` among parsed ``creature`` rows, or 0."""
    return max([_as_int(row.get('guid')) for row in rows] + [0])
