"""
SQL generator and importer for AzerothCore 3.3.5a creature tables.

Generates the world database rows for creatures created from model assets
(``creature_template``, ``creature_template_addon``, ``creature_model_info``,
``creature`` spawns), DELETE statements for creature templates removed as
invalid, and reads ``INSERT INTO`` statements back from SQL dumps.

Every generated row is preceded by a DELETE of the same key, so a file
written by a later run can be applied over an earlier one.

Usage::

    from creature_maps.sql_generator import SQLGenerator

    gen = SQLGenerator(start_entry=90000)
    entry = gen.add_creature({'name': 'Rat', 'modelid1': 30001})
    gen.add_spawn({'entry': entry, 'map': 13, 'position': (0, 0, 0, 0)})
    gen.write_sql('creatures.sql')

Target database: AzerothCore ``acore_world`` (build 12340, WotLK 3.3.5a).
"""

import datetime
import logging
import os
import re

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Table output ordering (FK dependency order)
# ---------------------------------------------------------------------------
_TABLE_ORDER = [
    'creature_model_info',
    'creature_template',
    'creature_template_addon',
    'creature',
]

# Deletions run before any insert of the same file
_DELETE_ORDER = ['creature', 'creature_template_addon', 'creature_template']

# Generated rows are deleted by key before they are inserted again:
# (table, key column, entity type)
_REPLACE_KEYS = [
    ('creature', 'guid', 'spawns'),
    ('creature_template_addon', 'entry', 'template_addons'),
    ('creature_template', 'entry', 'creatures'),
    ('creature_model_info', 'DisplayID', 'model_info'),
]

# ---------------------------------------------------------------------------
# creature_template flags / enums used by generated creatures
# ---------------------------------------------------------------------------
UNIT_FLAG_IMMUNE_TO_NPC = 0x00000200
CREATURE_TYPE_MECHANICAL = 9
UNIT_CLASS_WARRIOR = 1
CREATURE_RANK_NORMAL = 0


# creature_template column -> (definition key, default)
_CREATURE_TEMPLATE_COLUMNS = [
    ('entry', 'entry', 0),
    ('difficulty_entry_1', 'difficulty_entry_1', 0),
    ('difficulty_entry_2', 'difficulty_entry_2', 0),
    ('difficulty_entry_3', 'difficulty_entry_3', 0),
    ('KillCredit1', 'kill_credit_1', 0),
    ('KillCredit2', 'kill_credit_2', 0),
    ('modelid1', 'modelid1', 0),
    ('modelid2', 'modelid2', 0),
    ('modelid3', 'modelid3', 0),
    ('modelid4', 'modelid4', 0),
    ('name', 'name', ''),
    ('subname', 'subname', ''),
    ('IconName', 'icon_name', ''),
    ('gossip_menu_id', 'gossip_menu_id', 0),
    ('minlevel', 'minlevel', 1),
    ('maxlevel', 'maxlevel', 1),
    ('exp', 'exp', 0),
    ('faction', 'faction', 0),
    ('npcflag', 'npcflag', 0),
    ('speed_walk', 'speed_walk', 1.0),
    ('speed_run', 'speed_run', 1.14286),
    ('scale', 'scale', 1.0),
    ('rank', 'rank', CREATURE_RANK_NORMAL),
    ('dmgschool', 'dmgschool', 0),
    ('BaseAttackTime', 'base_attack_time', 2000),
    ('RangeAttackTime', 'range_attack_time', 0),
    ('BaseVariance', 'base_variance', 1.0),
    ('RangeVariance', 'range_variance', 1.0),
    ('unit_class', 'unit_class', UNIT_CLASS_WARRIOR),
    ('unit_flags', 'unit_flags', 0),
    ('unit_flags2', 'unit_flags2', 0),
    ('dynamicflags', 'dynamicflags', 0),
    ('family', 'family', 0),
    ('type', 'type', 0),
    ('type_flags', 'type_flags', 0),
    ('lootid', 'lootid', 0),
    ('pickpocketloot', 'pickpocketloot', 0),
    ('skinloot', 'skinloot', 0),
    ('PetSpellDataId', 'pet_spell_data_id', 0),
    ('VehicleId', 'vehicle_id', 0),
    ('mingold', 'mingold', 0),
    ('maxgold', 'maxgold', 0),
    ('AIName', 'ai_name', ''),
    ('MovementType', 'movement_type', 0),
    ('HoverHeight', 'hover_height', 1.0),
    ('HealthModifier', 'health_modifier', 1.0),
    ('ManaModifier', 'mana_modifier', 1.0),
    ('ArmorModifier', 'armor_modifier', 1.0),
    ('DamageModifier', 'damage_modifier', 1.0),
    ('ExperienceModifier', 'experience_modifier', 1.0),
    ('RacialLeader', 'racial_leader', 0),
    ('movementId', 'movement_id', 0),
    ('RegenHealth', 'regen_health', 1),
    ('mechanic_immune_mask', 'mechanic_immune_mask', 0),
    ('flags_extra', 'flags_extra', 0),
    ('ScriptName', 'script_name', ''),
]


# ===================================================================
# BaseBuilder
# ===================================================================

class BaseBuilder:
    """Base class for all table builders."""

    def __init__(self, generator):
        """
        Args:
            generator: Parent SQLGenerator instance.
        """
        self.gen = generator

    @staticmethod
    def escape_sql_string(s):
        """
        Quote a string for a SQL statement: backslashes escaped, single
        quotes doubled.  ``None`` returns ``NULL`` (unquoted).
        """
        if s is None:
            return 'NULL'
        return "'" + str(s).replace("\\", "\\\\").replace("'", "''") + "'"

    def format_value(self, v):
        if v is None:
            return 'NULL'
        if isinstance(v, str):
            return self.escape_sql_string(v)
        if isinstance(v, (int, float)):
            return str(v)
        return self.escape_sql_string(str(v))

    def format_insert(self, table, columns, values, comment=None):
        """
        Format an INSERT statement with explicit column names.

        Args:
            table: Table name.
            columns: List of column name strings.
            values: List of value rows (one list/tuple per row).
            comment: Optional SQL comment placed before the INSERT.
        """
        lines = []
        if comment:
            lines.append(comment)

        col_list = ', '.join('`{}`'.format(c) for c in columns)
        lines.append('INSERT INTO `{}` ({}) VALUES'.format(table, col_list))

        value_rows = [
            '(' + ', '.join(self.format_value(v) for v in row) + ')'
            for row in values
        ]
        lines.append(',\n'.join(value_rows) + ';')
        return '\n'.join(lines)

    def add_sql(self, table, sql):
        """Append a SQL statement string to the generator buffer for *table*."""
        self.gen.sql_buffers.setdefault(table, []).append(sql)


# ===================================================================
# CreatureBuilder
# ===================================================================

class CreatureBuilder(BaseBuilder):
    """Generates ``creature_template`` and ``creature_template_addon`` SQL."""

    def add_creature(self, creature_def):
        """
        Add a creature from a structured definition dict.

        Args:
            creature_def: dict keyed like the definition keys of
                ``_CREATURE_TEMPLATE_COLUMNS`` (``name``, ``modelid1``,
                ``faction``, ``unit_flags``, ``type``, ``minlevel``, ...).
                ``entry`` is auto-allocated when omitted.

        Returns:
            int: Allocated or explicit entry ID.
        """
        entry = creature_def.get('entry')
        if entry is None:
            entry = self.gen.allocate_entry()

        self.gen.register_entity('creatures', entry, creature_def)

        columns = [col for col, _, _ in _CREATURE_TEMPLATE_COLUMNS]
        row = [entry] + [
            creature_def.get(key, default)
            for _, key, default in _CREATURE_TEMPLATE_COLUMNS[1:]
        ]

        comment = '-- Creature: {} ({})'.format(creature_def.get('name', ''), entry)
        self.add_sql('creature_template',
                     self.format_insert('creature_template', columns, [row],
                                        comment=comment))
        return entry

    def add_template_addon(self, entry, emote=0, mount=0, bytes1=0, bytes2=0,
                           auras=''):
        """Add a ``creature_template_addon`` row for *entry*."""
        self.gen.register_entity('template_addons', entry, {'emote': emote})
        columns = ['entry', 'path_id', 'mount', 'bytes1', 'bytes2', 'emote',
                   'visibilityDistanceType', 'auras']
        row = [entry, 0, mount, bytes1, bytes2, emote, 0, auras]
        self.add_sql('creature_template_addon',
                     self.format_insert('creature_template_addon', columns, [row]))

    def add_model_info(self, display_id, bounding_radius=0.375, combat_reach=1.25,
                       gender=2, display_id_other_gender=0):
        """Add a ``creature_model_info`` row for a display ID."""
        self.gen.register_entity('model_info', display_id, {'gender': gender})
        columns = ['DisplayID', 'BoundingRadius', 'CombatReach', 'Gender',
                   'DisplayID_Other_Gender']
        row = [display_id, bounding_radius, combat_reach, gender,
               display_id_other_gender]
        self.add_sql('creature_model_info',
                     self.format_insert('creature_model_info', columns, [row]))


# ===================================================================
# SpawnBuilder
# ===================================================================

class SpawnBuilder(BaseBuilder):
    """Generates ``creature`` (spawn) SQL."""

    def add_spawn(self, spawn_def):
        """
        Add a creature spawn.

        Args:
            spawn_def: dict with keys ``entry`` (required), ``guid``
                (auto-allocated when omitted), ``map``, ``zone``, ``area``,
                ``position`` (x, y, z, orientation), ``spawntimesecs``
                (default 120), ``wander_distance``, ``movement_type``,
                ``spawn_mask``, ``phase_mask``.

        Returns:
            int: Assigned GUID for the spawn.
        """
        guid = spawn_def.get('guid')
        if guid is None:
            guid = self.gen.allocate_guid()

        creature_entry = spawn_def['entry']
        self.gen.register_entity('spawns', guid, {'entry': creature_entry})
        pos = spawn_def.get('position', (0, 0, 0, 0))
        zone_id = spawn_def.get('zone', 0)

        columns = [
            'guid', 'id1', 'map', 'zoneId', 'areaId',
            'spawnMask', 'phaseMask', 'equipment_id',
            'position_x', 'position_y', 'position_z', 'orientation',
            'spawntimesecs', 'wander_distance', 'currentwaypoint',
            'curhealth', 'curmana', 'MovementType',
        ]
        row = [
            guid,
            creature_entry,
            spawn_def.get('map', 0),
            zone_id,
            spawn_def.get('area', zone_id),
            spawn_def.get('spawn_mask', 1),
            spawn_def.get('phase_mask', 1),
            0,
            pos[0], pos[1], pos[2],
            pos[3] if len(pos) > 3 else 0,
            spawn_def.get('spawntimesecs', 120),
            spawn_def.get('wander_distance', 0),
            0,
            spawn_def.get('curhealth', 1),
            spawn_def.get('curmana', 0),
            spawn_def.get('movement_type', 0),
        ]

        comment = '-- Spawn: creature {} at ({}, {}, {})'.format(
            creature_entry, pos[0], pos[1], pos[2])
        self.add_sql('creature',
                     self.format_insert('creature', columns, [row], comment=comment))
        return guid


# ===================================================================
# SQLGenerator (orchestrator)
# ===================================================================

class SQLGenerator:
    """
    Collects creature SQL for one generation run.

    Responsibilities:
    - Entry and GUID management (auto-increment from configurable bases,
      skipping reserved IDs).
    - Duplicate entry detection.
    - DELETE statements for removed creature templates, and for every
      generated row so the file can be applied more than once.
    - Output as a single file or string.
    """

    def __init__(self, start_entry=90000, start_guid=1):
        """
        Args:
            start_entry: Base entry ID for auto-generated creature entries.
            start_guid: First GUID handed out to spawns.
        """
        self.start_entry = start_entry
        self.current_entry = start_entry
        self.start_guid = start_guid
        self.current_guid = start_guid

        self.creature_builder = CreatureBuilder(self)
        self.spawn_builder = SpawnBuilder(self)

        self.entities = {
            'creatures': {},        # entry -> creature_data
            'template_addons': {},  # entry -> addon_data
            'model_info': {},       # display_id -> model_info_data
            'spawns': {},           # guid -> spawn_data
        }
        # IDs owned elsewhere that auto-allocation must not hand out
        self.reserved = {'creatures': set(), 'spawns': set()}
        self.deleted_entries = []

        # table_name -> list of SQL statements
        self.sql_buffers = {}

    # ------------------------------------------------------------------
    # Entry ID management
    # ------------------------------------------------------------------

    def reserve(self, entity_type, ids):
        """Keep *ids* out of auto-allocation for *entity_type*."""
        self.reserved[entity_type].update(ids)

    def _is_taken(self, entity_type, value):
        return (value in self.entities[entity_type]
                or value in self.reserved[entity_type])

    def allocate_entry(self):
        """Allocate and return the next available entry ID."""
        while self._is_taken('creatures', self.current_entry):
            self.current_entry += 1
        entry = self.current_entry
        self.current_entry += 1
        return entry

    def allocate_guid(self):
        """Allocate and return the next available spawn GUID."""
        while self._is_taken('spawns', self.current_guid):
            self.current_guid += 1
        guid = self.current_guid
        self.current_guid += 1
        return guid

    def register_entity(self, entity_type, entry, data):
        """
        Register an entity for duplicate detection.

        Raises:
            ValueError: If a duplicate entry ID is detected.
        """
        if entry in self.entities[entity_type]:
            raise ValueError(
                "Duplicate {} entry: {}".format(entity_type, entry))
        self.entities[entity_type][entry] = data

    # ------------------------------------------------------------------
    # Convenience API
    # ------------------------------------------------------------------

    def add_creature(self, creature_def):
        return self.creature_builder.add_creature(creature_def)

    def add_template_addon(self, entry, **kwargs):
        self.creature_builder.add_template_addon(entry, **kwargs)

    def add_model_info(self, display_id, **kwargs):
        self.creature_builder.add_model_info(display_id, **kwargs)

    def add_spawn(self, spawn_def):
        return self.spawn_builder.add_spawn(spawn_def)

    def delete_creatures(self, entries):
        """
        Queue removal of creature templates together with their spawns and
        template addons.
        """
        entries = sorted(set(entries))
        if not entries:
            return
        self.deleted_entries.extend(entries)
        id_list = ', '.join(str(e) for e in entries)
        statements = {
            'creature': 'DELETE FROM `creature` WHERE `id1` IN ({});',
            'creature_template_addon':
                'DELETE FROM `creature_template_addon` WHERE `entry` IN ({});',
            'creature_template':
                'DELETE FROM `creature_template` WHERE `entry` IN ({});',
        }
        for table in _DELETE_ORDER:
            self.sql_buffers.setdefault('delete:' + table, []).append(
                statements[table].format(id_list))
        log.info("Queued deletion of %d creature templates", len(entries))

    def has_sql(self):
        return any(self.sql_buffers.values())

    # ------------------------------------------------------------------
    # SQL output
    # ------------------------------------------------------------------

    def _replace_statements(self):
        """DELETEs by key for every generated row."""
        statements = []
        for table, column, entity_type in _REPLACE_KEYS:
            keys = sorted(self.entities[entity_type])
            if keys:
                statements.append('DELETE FROM `{}` WHERE `{}` IN ({});'.format(
                    table, column, ', '.join(str(k) for k in keys)))
        return statements

    def _sections(self):
        for table in _DELETE_ORDER:
            statements = self.sql_buffers.get('delete:' + table)
            if statements:
                yield 'DELETE ' + table, statements
        statements = self._replace_statements()
        if statements:
            yield 'DELETE generated rows', statements
        for table in _TABLE_ORDER:
            statements = self.sql_buffers.get(table)
            if statements:
                yield table, statements
        for table, statements in self.sql_buffers.items():
            if table not in _TABLE_ORDER and not table.startswith('delete:') \
                    and statements:
                yield table, statements

    def get_sql(self):
        """Return all generated SQL as a single string."""
        parts = [self._generate_header(), '\n\n']
        for title, statements in self._sections():
            parts.append('-- ============================================\n')
            parts.append('-- {}\n'.format(title.upper()))
            parts.append('-- ============================================\n\n')
            for sql in statements:
                parts.append(sql)
                parts.append('\n\n')
        return ''.join(parts)

    def write_sql(self, output_path):
        """Write all generated SQL to *output_path*."""
        parent = os.path.dirname(output_path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        with open(output_path, 'w', encoding='utf-8') as f:
            f.write(self.get_sql())
        log.info("Wrote creature SQL: %s", output_path)
        return output_path

    def _generate_header(self):
        last_entry = max(self.current_entry - 1, self.start_entry)
        return (
            '-- ============================================\n'
            '-- Creature Model Viewer SQL\n'
            '-- Generated: {}\n'
            '-- Entry Range: {} - {}\n'
            '-- ============================================'
        ).format(datetime.datetime.now().isoformat(), self.start_entry, last_entry)


# ===================================================================
# _SQLParser (internal class for SQL import)
# ===================================================================

class _SQLParser:
    """
    Reads ``INSERT INTO`` statements from AzerothCore SQL dumps.

    Handles comment stripping, multi-row VALUES blocks, NULL, numbers and
    quoted strings with ``''`` / backslash escapes.
    """

    _INSERT_RE = re.compile(
        r'INSERT\s+(?:IGNORE\s+)?INTO\s+`?(\w+)`?\s*'
        r'\(([^)]+)\)\s*VALUES\s*',
        re.IGNORECASE,
    )

    _ESCAPES = {'n': '\n', 'r': '\r', 't': '\t', '0': '\0'}

    @classmethod
    def parse_file(cls, filepath):
        """
        Parse *filepath*.

        Returns:
            dict: ``{table_name: [{'col': value, ...}, ...]}`` in file order.
        """
        with open(filepath, 'r', encoding='utf-8') as f:
            return cls.parse_text(f.read())

    @classmethod
    def parse_text(cls, sql_text):
        sql_text = re.sub(r'/\*.*?\*/', '', sql_text, flags=re.DOTALL)
        results = {}
        pos = 0
        while True:
            match = cls._INSERT_RE.search(sql_text, pos)
            if match is None:
                break
            if cls._in_comment(sql_text, match.start()):
                pos = match.end()
                continue

            table_name = match.group(1)
            columns = [c.strip().strip('`').strip()
                       for c in match.group(2).split(',') if c.strip()]
            rows, pos = cls._parse_rows(sql_text, match.end())

            for values in rows:
                row = {}
                for i, col in enumerate(columns):
                    row[col] = values[i] if i < len(values) else None
                results.setdefault(table_name, []).append(row)
        return results

    @staticmethod
    def _in_comment(text, index):
        """True when *index* sits on a ``--`` comment line."""
        line_start = text.rfind('\n', 0, index) + 1
        return '--' in text[line_start:index]

    @classmethod
    def _parse_rows(cls, text, pos):
        """
        Parse ``(...), (...);`` starting at *pos*.

        Returns:
            tuple: (list of value lists, position after the statement).
        """
        rows = []
        length = len(text)
        while pos < length:
            ch = text[pos]
            if cls._starts_line_comment(text, pos):
                pos = cls._skip_line(text, pos)
            elif ch == '(':
                values, pos = cls._parse_tuple(text, pos + 1)
                rows.append(values)
            elif ch == ';':
                return rows, pos + 1
            else:
                pos += 1
        return rows, pos

    @staticmethod
    def _starts_line_comment(text, pos):
        """``--`` or ``#`` comment at *pos* (outside a quoted string)."""
        return text[pos] == '#' or text.startswith('--', pos)

    @staticmethod
    def _skip_line(text, pos):
        end = text.find('\n', pos)
        return len(text) if end == -1 else end + 1

    @classmethod
    def _parse_tuple(cls, text, pos):
        values = []
        token = []
        quoted = False
        length = len(text)

        while pos < length:
            ch = text[pos]
            if ch == "'":
                s, pos = cls._parse_string(text, pos + 1)
                if not quoted:
                    token = []   # whitespace before the opening quote
                token.append(s)
                quoted = True
                continue
            if cls._starts_line_comment(text, pos):
                pos = cls._skip_line(text, pos)
                continue
            if ch in ',)':
                values.append(''.join(token) if quoted
                              else cls._parse_value(''.join(token).strip()))
                token = []
                quoted = False
                pos += 1
                if ch == ')':
                    return values, pos
                continue
            if not quoted:
                token.append(ch)
            pos += 1
        return values, pos

    @classmethod
    def _parse_string(cls, text, pos):
        """Parse a quoted string body; returns (value, position after the quote)."""
        out = []
        length = len(text)
        while pos < length:
            ch = text[pos]
            if ch == '\\' and pos + 1 < length:
                nxt = text[pos + 1]
                out.append(cls._ESCAPES.get(nxt, nxt))
                pos += 2
                continue
            if ch == "'":
                if pos + 1 < length and text[pos + 1] == "'":
                    out.append("'")
                    pos += 2
                    continue
                return ''.join(out), pos + 1
            out.append(ch)
            pos += 1
        return ''.join(out), pos

    @staticmethod
    def _parse_value(value_str):
        """Parse an unquoted token: NULL -> None, then int, float, or raw string."""
        if not value_str or value_str.upper() == 'NULL':
            return None
        try:
            return int(value_str)
        except ValueError:
            pass
        try:
            return float(value_str)
        except ValueError:
            return value_str


# ---------------------------------------------------------------------------
# Table name -> entity category mapping for import_sql()
# ---------------------------------------------------------------------------

_TABLE_CATEGORY_MAP = {
    'creature_template': 'creatures',
    'creature_template_addon': 'template_addons',
    'creature_model_info': 'model_info',
    'creature': 'spawns',
}


def import_sql(filepath):
    """
    Import creature rows from a SQL file containing INSERT INTO statements.

    Returns:
        dict: ``{'creatures': [...], 'template_addons': [...],
        'model_info': [...], 'spawns': [...]}``; each row is a dict of
        column name -> parsed value.  Other tables are ignored.
    """
    parsed = _SQLParser.parse_file(filepath)

    result = dict((category, []) for category in _TABLE_CATEGORY_MAP.values())
    for table_name, rows in parsed.items():
        category = _TABLE_CATEGORY_MAP.get(table_name)
        if category is None:
            log.debug("Skipping unmapped table during SQL import: %s", table_name)
            continue
        result[category].extend(rows)

    log.info("Imported %d rows from %s",
             sum(len(v) for v in result.values()), filepath)
    return result
