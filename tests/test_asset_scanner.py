"""
Tests for the DBC readers/injectors, creature SQL generation and import,
the model asset scanner, the addon TOC and the full generation run.

Uses freshly created seed DBC files; no WoW client is needed.
"""

import os
import sys
import runpy
import struct
import shutil
import tempfile
import traceback

# Ensure the project root is on the path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from creature_maps.dbc_injector import (DBCInjector, DBCSession, register_creature_model,
                                        register_creature_display, register_emote)
from creature_maps.id_registry import IDRegistry
from creature_maps.records import (TemplateRecord, read_model_records,
                                   read_display_records, read_template_records)
from creature_maps.map_builder import build_index
from creature_maps.sql_generator import SQLGenerator, import_sql
from creature_maps.asset_scanner import (AssetScanner, SpawnGrid,
                                         to_client_model_path, safe_name_from_path,
                                         walk_model_files, find_invalid_templates)
from creature_maps.addon_generator import render_toc
from creature_maps import generate_creature_maps


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_PASSED = 0
_FAILED = 0
_ERRORS = []


def _test(name, fn):
    """Run a test function, track pass/fail."""
    global _PASSED, _FAILED
    try:
        fn()
        _PASSED += 1
        print("  PASS  {}".format(name))
    except Exception as e:
        _FAILED += 1
        _ERRORS.append((name, e))
        print("  FAIL  {} -- {}".format(name, e))
        traceback.print_exc()


class _TempDir:
    """Context manager for a scratch directory."""

    def __enter__(self):
        self.path = tempfile.mkdtemp(prefix="creature_maps_test_")
        return self.path

    def __exit__(self, *exc):
        shutil.rmtree(self.path, ignore_errors=True)
        return False


def _touch(path):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, 'wb') as f:
        f.write(b'MD20')


def _seed_dbcs(dbc_dir):
    """One rat model with one textured display."""
    register_creature_model(dbc_dir, "Beasts\\Rat.mdx", model_id=10)
    register_creature_display(dbc_dir, 10, display_id=100, textures=["RatSkin"])


_TEMPLATE_SQL = """
-- creature_template dump
/* block comment with INSERT INTO `creature_template` (`entry`) VALUES (1); */
INSERT INTO `creature_template` (`entry`, `modelid1`, `modelid2`, `modelid3`, `modelid4`, `name`) VALUES
(5000, 100, 0, 0, 0, 'Rat''s Nest'),
(5001, 0, 0, 0, 0, 'No Model'),
(5002, 100, 999, 0, 0, 'Broken (variant)');
INSERT INTO `creature_template_addon` (`entry`, `emote`) VALUES (5000, 0);
INSERT INTO `gameobject_template` (`entry`) VALUES (1);
"""


def _write_template_sql(path, text=_TEMPLATE_SQL):
    with open(path, 'w', encoding='utf-8') as f:
        f.write(text)
    return path


_DBC_NAMES = ('CreatureModelData.dbc', 'CreatureDisplayInfo.dbc', 'Emotes.dbc')


def _record_counts(dbc_dir):
    """Record count of each creature DBC (None when the file is missing)."""
    counts = []
    for name in _DBC_NAMES:
        path = os.path.join(dbc_dir, name)
        counts.append(len(DBCInjector(path).records) if os.path.isfile(path) else None)
    return counts


def _read_bytes(path):
    with open(path, 'rb') as f:
        return f.read()


class _CountingWrites:
    """Records the file name of every DBCInjector.write inside the block."""

    def __enter__(self):
        self.names = []
        self._original = DBCInjector.write
        original = self._original
        names = self.names

        def write(dbc, filepath):
            names.append(os.path.basename(filepath))
            original(dbc, filepath)

        DBCInjector.write = write
        return self.names

    def __exit__(self, *exc):
        DBCInjector.write = self._original
        return False


# ---------------------------------------------------------------------------
# DBC
# ---------------------------------------------------------------------------

def test_register_creature_model():
    with _TempDir() as dbc_dir:
        model_id = register_creature_model(dbc_dir, "Creature\\Rat\\Rat.mdx")
        assert model_id == 1, "Expected auto ID 1, got {}".format(model_id)
        assert register_creature_model(dbc_dir, "Creature\\Wolf.mdx") == 2

        dbc = DBCInjector(os.path.join(dbc_dir, 'CreatureModelData.dbc'))
        assert dbc.field_count == 28 and dbc.record_size == 112
        assert len(dbc.records) == 2
        assert all(len(rec) == 112 for rec in dbc.records)

        records = read_model_records(dbc_dir)
        assert [(r.id, r.path) for r in records] == [
            (1, "Creature\\Rat\\Rat.mdx"), (2, "Creature\\Wolf.mdx")]


def test_register_creature_model_fields():
    with _TempDir() as dbc_dir:
        register_creature_model(dbc_dir, "A.mdx", model_id=7, blood_id=-1,
                                collision_height=2.08, sound_id=247)
        dbc = DBCInjector(os.path.join(dbc_dir, 'CreatureModelData.dbc'))
        rec = dbc.records[0]
        assert struct.unpack_from('<i', rec, 5 * 4)[0] == -1
        assert abs(struct.unpack_from('<f', rec, 15 * 4)[0] - 2.08) < 1e-5
        assert struct.unpack_from('<I', rec, 13 * 4)[0] == 247


def test_register_creature_display():
    with _TempDir() as dbc_dir:
        display_id = register_creature_display(
            dbc_dir, 10, display_id=100, textures=["Skin1", "", "Skin3"])
        assert display_id == 100
        assert register_creature_display(dbc_dir, 10) == 101

        dbc = DBCInjector(os.path.join(dbc_dir, 'CreatureDisplayInfo.dbc'))
        assert dbc.record_size == 64
        assert dbc.get_record_field(0, 1) == 10

        records = read_display_records(dbc_dir)
        assert records[0].textures == ("Skin1", "", "Skin3")
        assert records[0].texture_list() == ["Skin1", "Skin3"]
        assert records[1].texture_list() == []
        assert [r.id for r in records] == [100, 101]


def test_register_display_rejects_four_textures():
    with _TempDir() as dbc_dir:
        try:
            register_creature_display(dbc_dir, 1, textures=["a", "b", "c", "d"])
        except ValueError:
            return
        raise AssertionError("Expected ValueError for 4 textures")


def test_register_emote():
    with _TempDir() as dbc_dir:
        emote_id = register_emote(dbc_dir, 158, spec_proc=2)
        assert emote_id == 1
        dbc = DBCInjector(os.path.join(dbc_dir, 'Emotes.dbc'))
        assert dbc.record_size == 28
        assert dbc.get_record_field(0, 2) == 158
        assert dbc.get_record_field(0, 4) == 2


def test_bad_magic_raises():
    with _TempDir() as dbc_dir:
        path = os.path.join(dbc_dir, 'CreatureModelData.dbc')
        with open(path, 'wb') as f:
            f.write(b'XXXX' + b'\x00' * 16)
        try:
            read_model_records(dbc_dir)
        except ValueError:
            return
        raise AssertionError("Expected ValueError for bad magic")


def test_missing_dbc_is_empty():
    with _TempDir() as dbc_dir:
        assert read_model_records(dbc_dir) == []
        assert read_display_records(dbc_dir) == []


def test_string_deduplication():
    with _TempDir() as dbc_dir:
        register_creature_display(dbc_dir, 1, textures=["Same", "Same"])
        register_creature_display(dbc_dir, 1, textures=["Same"])
        dbc = DBCInjector(os.path.join(dbc_dir, 'CreatureDisplayInfo.dbc'))
        assert bytes(dbc.string_block) == b'\x00Same\x00'


def test_dbc_session_writes_once():
    with _TempDir() as dbc_dir:
        _seed_dbcs(dbc_dir)
        with _CountingWrites() as writes:
            with DBCSession(dbc_dir) as dbc:
                for name in ("A.mdx", "B.mdx", "C.mdx"):
                    model_id = dbc.add_creature_model(name)
                    dbc.add_creature_display(model_id, textures=["Skin"])
                # nothing reaches the disk before the block ends
                assert len(read_model_records(dbc_dir)) == 1

        assert sorted(writes) == ['CreatureDisplayInfo.dbc', 'CreatureModelData.dbc']
        assert [m.id for m in read_model_records(dbc_dir)] == [10, 11, 12, 13]
        displays = read_display_records(dbc_dir)
        assert [(d.id, d.model_id) for d in displays] == [
            (100, 10), (101, 11), (102, 12), (103, 13)]


def test_dbc_session_error_writes_nothing():
    with _TempDir() as dbc_dir:
        _seed_dbcs(dbc_dir)
        try:
            with DBCSession(dbc_dir) as dbc:
                dbc.add_creature_model("A.mdx")
                dbc.add_creature_display(11, textures=["a", "b", "c", "d"])
        except ValueError:
            pass
        else:
            raise AssertionError("Expected ValueError for 4 textures")
        assert _record_counts(dbc_dir)[:2] == [1, 1]


def test_find_emote():
    with _TempDir() as dbc_dir:
        register_emote(dbc_dir, 60)
        register_emote(dbc_dir, 158, spec_proc=2)
        with DBCSession(dbc_dir) as dbc:
            assert dbc.find_emote(158) == 2
            assert dbc.find_emote(158, spec_proc=2) == 2
            assert dbc.find_emote(158, spec_proc=1) is None
            assert dbc.find_emote(999) is None


def test_id_registry_roundtrip():
    with _TempDir() as tmp:
        path = os.path.join(tmp, 'ids', 'creature_ids.json')
        registry = IDRegistry(path)
        assert registry.get('mod', 'Rat_CreatureTemplate') is None
        registry.set('mod', 'Rat_CreatureTemplate', 90000)
        registry.set('mod', 'Rat_Spawn', 7)
        registry.set('other', 'Wolf_CreatureTemplate', 90001)
        registry.save()

        loaded = IDRegistry(path)
        assert loaded.get('mod', 'Rat_CreatureTemplate') == 90000
        assert sorted(loaded.values('_CreatureTemplate')) == [90000, 90001]
        assert loaded.values('_Spawn') == [7]
        # an in-memory registry never touches the disk
        IDRegistry().save()


def test_id_registry_rejects_non_object():
    with _TempDir() as tmp:
        path = os.path.join(tmp, 'creature_ids.json')
        with open(path, 'w') as f:
            f.write('[1, 2]')
        try:
            IDRegistry(path)
        except ValueError:
            return
        raise AssertionError("Expected ValueError for a JSON list")


# ---------------------------------------------------------------------------
# SQL
# ---------------------------------------------------------------------------

def test_read_template_records():
    with _TempDir() as tmp:
        path = _write_template_sql(os.path.join(tmp, 'world.sql'))
        templates = read_template_records(path)
        assert [(t.entry, t.display_ids) for t in templates] == [
            (5000, (100, 0, 0, 0)),
            (5001, (0, 0, 0, 0)),
            (5002, (100, 999, 0, 0)),
        ]

        parsed = import_sql(path)
        assert parsed['creatures'][0]['name'] == "Rat's Nest"
        assert parsed['creatures'][2]['name'] == "Broken (variant)"
        assert parsed['template_addons'] == [{'entry': 5000, 'emote': 0}]


def test_commented_rows_are_skipped():
    text = (
        "INSERT INTO `creature_template` (`entry`, `modelid1`, `name`) VALUES\n"
        "-- (6000, 555, 'Disabled'),\n"
        "(5000, 100, 'Rat -- #1'), # trailing note\n"
        "# (6001, 556, 'Also disabled'),\n"
        "(5001, 101 -- inline note\n"
        ", 'Wolf');\n"
    )
    with _TempDir() as tmp:
        path = _write_template_sql(os.path.join(tmp, 'world.sql'), text)
        templates = read_template_records(path)
        assert [t.entry for t in templates] == [5000, 5001]
        assert templates[1].display_ids == (101, 0, 0, 0)

        rows = import_sql(path)['creatures']
        assert [r['name'] for r in rows] == ['Rat -- #1', 'Wolf']


def test_read_template_records_missing_file():
    assert read_template_records(None) == []
    assert read_template_records('/nonexistent/world.sql') == []


def test_sql_generator_roundtrip():
    gen = SQLGenerator(start_entry=90000)
    entry = gen.add_creature({'name': "Bob's \\ Rat", 'modelid1': 30001,
                              'scale': 2.0})
    assert entry == 90000
    assert gen.add_creature({'name': 'Explicit', 'entry': 90001}) == 90001
    assert gen.add_creature({'name': 'Next'}) == 90002
    gen.add_template_addon(entry, emote=5)
    gen.add_model_info(30001)
    gen.add_spawn({'entry': entry, 'map': 13, 'position': (1.5, 2.5, 3.5, 0.5)})

    with _TempDir() as tmp:
        path = gen.write_sql(os.path.join(tmp, 'sql', 'out.sql'))
        parsed = import_sql(path)

    creatures = parsed['creatures']
    assert [c['entry'] for c in creatures] == [90000, 90001, 90002]
    assert creatures[0]['name'] == "Bob's \\ Rat"
    assert creatures[0]['modelid1'] == 30001
    assert creatures[0]['scale'] == 2.0
    assert parsed['template_addons'][0]['emote'] == 5
    assert parsed['model_info'][0]['DisplayID'] == 30001
    assert parsed['spawns'][0]['position_x'] == 1.5
    assert parsed['spawns'][0]['id1'] == 90000


def test_sql_generator_duplicate_entry():
    gen = SQLGenerator()
    gen.add_creature({'name': 'A', 'entry': 1})
    try:
        gen.add_creature({'name': 'B', 'entry': 1})
    except ValueError:
        return
    raise AssertionError("Expected ValueError for duplicate entry")


def test_delete_creatures_precede_inserts():
    gen = SQLGenerator()
    gen.add_creature({'name': 'A'})
    gen.delete_creatures([5002, 5001, 5002])
    sql = gen.get_sql()
    assert 'DELETE FROM `creature_template` WHERE `entry` IN (5001, 5002);' in sql
    assert 'DELETE FROM `creature` WHERE `id1` IN (5001, 5002);' in sql
    assert sql.index('DELETE FROM') < sql.index('INSERT INTO')
    assert gen.deleted_entries == [5001, 5002]


def test_spawn_guids():
    gen = SQLGenerator(start_entry=90000, start_guid=500)
    gen.reserve('spawns', [501])
    assert gen.add_spawn({'entry': 90000}) == 500
    assert gen.add_spawn({'entry': 90000}) == 502
    assert gen.add_spawn({'entry': 90000, 'guid': 42}) == 42
    try:
        gen.add_spawn({'entry': 90000, 'guid': 500})
    except ValueError:
        pass
    else:
        raise AssertionError("Expected ValueError for duplicate guid")


def test_reserved_entries_are_skipped():
    gen = SQLGenerator(start_entry=90000)
    gen.reserve('creatures', [90000, 90002])
    assert gen.add_creature({'name': 'A'}) == 90001
    assert gen.add_creature({'name': 'B'}) == 90003
    # reserved entries can still be used explicitly
    assert gen.add_creature({'name': 'C', 'entry': 90000}) == 90000


def test_generated_rows_are_deleted_first():
    gen = SQLGenerator(start_entry=90000, start_guid=500)
    entry = gen.add_creature({'name': 'A', 'modelid1': 101})
    gen.add_template_addon(entry, emote=1)
    gen.add_model_info(101)
    gen.add_spawn({'entry': entry})
    sql = gen.get_sql()
    for statement in [
        'DELETE FROM `creature` WHERE `guid` IN (500);',
        'DELETE FROM `creature_template_addon` WHERE `entry` IN (90000);',
        'DELETE FROM `creature_template` WHERE `entry` IN (90000);',
        'DELETE FROM `creature_model_info` WHERE `DisplayID` IN (101);',
    ]:
        assert statement in sql, statement
        assert sql.index(statement) < sql.index('INSERT INTO')


# ---------------------------------------------------------------------------
# Asset scanner
# ---------------------------------------------------------------------------

def test_path_helpers():
    root = os.path.join('modules', 'mod', 'assets')
    path = os.path.join(root, 'Beasts', 'Big Rat.M2')
    assert to_client_model_path(root, path) == 'Beasts\\Big Rat.mdx'
    assert safe_name_from_path(root, path) == 'Beasts_Big_Rat'


def test_walk_model_files():
    with _TempDir() as root:
        _touch(os.path.join(root, 'b.m2'))
        _touch(os.path.join(root, 'a.M2'))
        _touch(os.path.join(root, 'readme.txt'))
        _touch(os.path.join(root, 'sub', 'c.m2'))
        found = [os.path.relpath(p, root) for p in walk_model_files(root)]
        assert found == ['a.M2', 'b.m2', os.path.join('sub', 'c.m2')]


def test_find_invalid_templates():
    templates = [
        TemplateRecord(1, [100, 0, 0, 0]),
        TemplateRecord(2, [0, 0, 0, 0]),
        TemplateRecord(3, [100, 5, 0, 0]),
    ]
    invalid = find_invalid_templates(templates, {100})
    assert [t.entry for t in invalid] == [2, 3]


def test_spawn_grid():
    grid = SpawnGrid(x0=0.0, y0=0.0, dx=-3.0, dy=10.0, per_row=10)
    assert grid.position(0)[:2] == (0.0, 0.0)
    assert grid.position(9)[:2] == (-27.0, 0.0)
    assert grid.position(10)[:2] == (0.0, 10.0)


def test_scanner_creates_creatures():
    with _TempDir() as tmp:
        dbc_dir = os.path.join(tmp, 'dbc')
        assets = os.path.join(tmp, 'assets')
        _seed_dbcs(dbc_dir)
        _touch(os.path.join(assets, 'My Model.m2'))
        _touch(os.path.join(assets, 'My-Model.m2'))   # same safe name
        _touch(os.path.join(assets, 'readme.txt'))
        _touch(os.path.join(assets, 'Beasts', 'Rat.m2'))

        index = build_index(read_model_records(dbc_dir),
                            read_display_records(dbc_dir), [])
        sql = SQLGenerator(start_entry=90000)
        scanner = AssetScanner(dbc_dir, 'test-module', assets, index, sql,
                               enable_spawns=True)
        overlay = scanner.scan()

        assert overlay.entry_to_display_id == {90000: 101, 90001: 102}
        assert overlay.display_id_to_path == {101: 'my model.mdx',
                                              102: 'beasts/rat.mdx'}
        # textures copied from the existing display of the same model path
        assert overlay.display_id_to_textures == {102: ['RatSkin']}

        models = dict((m.id, m.path) for m in read_model_records(dbc_dir))
        assert models[11] == 'My Model.mdx'
        assert models[12] == 'Beasts\\Rat.mdx'
        displays = dict((d.id, d) for d in read_display_records(dbc_dir))
        assert displays[102].model_id == 12
        assert displays[102].texture_list() == ['RatSkin']

        assert os.path.isfile(os.path.join(dbc_dir, 'Emotes.dbc'))
        assert len(scanner.created) == 2

        parsed_sql = sql.get_sql()
        assert "'My Model'" in parsed_sql
        assert parsed_sql.count('INSERT INTO `creature` ') == 2


def test_scanner_missing_assets_root():
    with _TempDir() as tmp:
        index = build_index([], [], [])
        scanner = AssetScanner(tmp, 'm', os.path.join(tmp, 'missing'), index,
                               SQLGenerator())
        overlay = scanner.scan()
        assert overlay.is_empty()
        assert not os.path.exists(os.path.join(tmp, 'Emotes.dbc'))


def test_scanner_writes_each_dbc_once():
    with _TempDir() as tmp:
        dbc_dir = os.path.join(tmp, 'dbc')
        assets = os.path.join(tmp, 'assets')
        _seed_dbcs(dbc_dir)
        register_emote(dbc_dir, 158, spec_proc=2)
        for name in ('A', 'B', 'C'):
            _touch(os.path.join(assets, name + '.m2'))

        index = build_index(read_model_records(dbc_dir),
                            read_display_records(dbc_dir), [])
        scanner = AssetScanner(dbc_dir, 'm', assets, index, SQLGenerator())
        with _CountingWrites() as writes:
            overlay = scanner.scan()

        # Emotes.dbc already plays the animation, so it is only read
        assert sorted(writes) == ['CreatureDisplayInfo.dbc', 'CreatureModelData.dbc']
        assert len(overlay.entry_to_display_id) == 3
        assert _record_counts(dbc_dir) == [4, 4, 1]
        addons = scanner.sql.entities['template_addons']
        assert set(a['emote'] for a in addons.values()) == {1}


def test_scanner_reuses_recorded_ids():
    with _TempDir() as tmp:
        dbc_dir = os.path.join(tmp, 'dbc')
        assets = os.path.join(tmp, 'assets')
        registry_path = os.path.join(tmp, 'creature_ids.json')
        _seed_dbcs(dbc_dir)
        _touch(os.path.join(assets, 'Beasts', 'Rat.m2'))
        _touch(os.path.join(assets, 'Wolf.m2'))

        def run():
            index = build_index(read_model_records(dbc_dir),
                                read_display_records(dbc_dir), [])
            sql = SQLGenerator(start_entry=90000, start_guid=700)
            scanner = AssetScanner(dbc_dir, 'test-module', assets, index, sql,
                                   enable_spawns=True,
                                   registry=IDRegistry(registry_path))
            return scanner.scan(), scanner

        first, _ = run()
        counts = _record_counts(dbc_dir)
        second, scanner = run()

        assert counts == [3, 3, 1]
        assert _record_counts(dbc_dir) == counts
        assert scanner.reused == 2
        assert second.entry_to_display_id == first.entry_to_display_id
        assert second.display_id_to_path == first.display_id_to_path
        assert second.display_id_to_textures == first.display_id_to_textures
        assert sorted(scanner.sql.entities['spawns']) == [700, 701]

        registry = IDRegistry(registry_path)
        display_id = registry.get('test-module', 'Beasts_Rat_CreatureDisplayInfo')
        assert second.display_id_to_path[display_id] == 'beasts/rat.mdx'


def test_scanner_replaces_stale_registry_ids():
    with _TempDir() as tmp:
        dbc_dir = os.path.join(tmp, 'dbc')
        assets = os.path.join(tmp, 'assets')
        _seed_dbcs(dbc_dir)
        _touch(os.path.join(assets, 'Rat.m2'))

        registry = IDRegistry()
        registry.set('m', 'Rat_CreatureDisplayInfo', 555)   # not in the DBC
        registry.set('m', 'Rat_CreatureTemplate', 5000)     # owned by display 100
        index = build_index(read_model_records(dbc_dir),
                            read_display_records(dbc_dir),
                            [TemplateRecord(5000, [100, 0, 0, 0])])
        scanner = AssetScanner(dbc_dir, 'm', assets, index,
                               SQLGenerator(start_entry=90000), registry=registry)
        overlay = scanner.scan()

        assert overlay.entry_to_display_id == {90000: 101}
        assert registry.get('m', 'Rat_CreatureDisplayInfo') == 101
        assert registry.get('m', 'Rat_CreatureTemplate') == 90000
        assert scanner.reused == 0


# ---------------------------------------------------------------------------
# Addon TOC + full run
# ---------------------------------------------------------------------------

def test_render_toc():
    toc = render_toc(extra_files=['CreatureModelViewer.lua'], author='me')
    assert '## Interface: 30300' in toc
    assert '## Title: CreatureModelViewer' in toc
    assert '## Author: me' in toc
    assert '## Notes' not in toc
    files = [line for line in toc.splitlines() if line.endswith('.lua')]
    assert files == [
        'CreatureDisplayIdMap.lua', 'CreatureModelPathMap.lua',
        'CreatureVariantsMap.lua', 'CreatureDisplayTexturesMap.lua',
        'CreatureModelViewer.lua',
    ]


def test_generate_creature_maps():
    with _TempDir() as tmp:
        dbc_dir = os.path.join(tmp, 'dbc')
        assets = os.path.join(tmp, 'assets')
        out_dir = os.path.join(tmp, 'addon')
        _seed_dbcs(dbc_dir)
        _touch(os.path.join(assets, 'Beasts', 'Rat.m2'))
        sql_path = _write_template_sql(os.path.join(tmp, 'world.sql'))

        result = generate_creature_maps(dbc_dir, sql_path, out_dir,
                                        assets_root=assets, module_name='test')

        assert result['removed_entries'] == [5001, 5002]
        assert result['overlay'].entry_to_display_id == {90000: 101}
        assert len(result['written']) == 4
        assert os.path.isfile(result['toc_path'])

        with open(os.path.join(out_dir, 'CreatureDisplayIdMap.lua')) as f:
            lines = f.read().split('\n')
        assert lines[-3:] == ['  [5000] = 100,', '  [90000] = 101,', '}']

        with open(os.path.join(out_dir, 'CreatureModelPathMap.lua')) as f:
            text = f.read()
        assert '  [100] = "beasts/rat.mdx",' in text
        assert '  [101] = "beasts/rat.mdx",' in text

        with open(os.path.join(out_dir, 'CreatureDisplayTexturesMap.lua')) as f:
            text = f.read()
        assert '  [101] = {"RatSkin"},' in text

        with open(result['sql_path'], encoding='utf-8') as f:
            sql = f.read()
        assert 'WHERE `entry` IN (5001, 5002);' in sql
        assert 'INSERT INTO `creature_template`' in sql


def test_generate_creature_maps_twice():
    with _TempDir() as tmp:
        dbc_dir = os.path.join(tmp, 'dbc')
        assets = os.path.join(tmp, 'assets')
        out_dir = os.path.join(tmp, 'addon')
        _seed_dbcs(dbc_dir)
        _touch(os.path.join(assets, 'Beasts', 'Rat.m2'))
        sql_path = _write_template_sql(os.path.join(tmp, 'world.sql'))

        def run():
            return generate_creature_maps(dbc_dir, sql_path, out_dir,
                                          assets_root=assets, module_name='test')

        first = run()
        lua_first = dict((p, _read_bytes(p)) for p in first['written'])
        counts = _record_counts(dbc_dir)
        dbc_first = [_read_bytes(os.path.join(dbc_dir, n)) for n in _DBC_NAMES]

        second = run()

        assert second['written'] == first['written']
        for path in second['written']:
            assert _read_bytes(path) == lua_first[path], os.path.basename(path)
        assert counts == [2, 2, 1]
        assert _record_counts(dbc_dir) == counts
        assert [_read_bytes(os.path.join(dbc_dir, n)) for n in _DBC_NAMES] == dbc_first
        assert second['overlay'].entry_to_display_id == {90000: 101}
        assert os.path.isfile(os.path.join(dbc_dir, 'creature_ids.json'))

        with open(second['sql_path'], encoding='utf-8') as f:
            sql = f.read()
        assert 'DELETE FROM `creature_template` WHERE `entry` IN (90000);' in sql
        assert sql.count('INSERT INTO `creature_template`') == 1


_SPAWN_SQL = _TEMPLATE_SQL + """
INSERT INTO `creature` (`guid`, `id1`, `map`) VALUES
(120000, 5000, 0),
(7, 5000, 0);
"""


def test_generate_creature_maps_spawn_guids():
    with _TempDir() as tmp:
        dbc_dir = os.path.join(tmp, 'dbc')
        assets = os.path.join(tmp, 'assets')
        _seed_dbcs(dbc_dir)
        _touch(os.path.join(assets, 'Beasts', 'Rat.m2'))
        sql_path = _write_template_sql(os.path.join(tmp, 'world.sql'), _SPAWN_SQL)

        result = generate_creature_maps(dbc_dir, sql_path, os.path.join(tmp, 'addon'),
                                        assets_root=assets, enable_spawns=True,
                                        write_toc=False)
        spawns = import_sql(result['sql_path'])['spawns']
        # past the highest imported GUID
        assert [s['guid'] for s in spawns] == [120001]
        assert spawns[0]['id1'] == 90000


def test_cli_start_guid():
    cli = runpy.run_path(os.path.join(PROJECT_ROOT, 'tools', 'generate_creature_maps.py'))
    with _TempDir() as tmp:
        dbc_dir = os.path.join(tmp, 'dbc')
        assets = os.path.join(tmp, 'assets')
        out_dir = os.path.join(tmp, 'addon')
        _seed_dbcs(dbc_dir)
        _touch(os.path.join(assets, 'Beasts', 'Rat.m2'))
        sql_path = _write_template_sql(os.path.join(tmp, 'world.sql'), _SPAWN_SQL)
        registry_path = os.path.join(tmp, 'ids.json')

        assert cli['main']([
            '--dbc-dir', dbc_dir, '--templates', sql_path, '-o', out_dir,
            '--assets', assets, '--spawns', '--start-guid', '777',
            '--id-registry', registry_path, '--no-toc',
        ]) == 0

        spawns = import_sql(os.path.join(out_dir, 'creature_models.sql'))['spawns']
        assert [s['guid'] for s in spawns] == [777]
        assert IDRegistry(registry_path).get('creature-models', 'Beasts_Rat_Spawn') == 777


def test_generate_creature_maps_without_assets():
    with _TempDir() as tmp:
        dbc_dir = os.path.join(tmp, 'dbc')
        out_dir = os.path.join(tmp, 'addon')
        _seed_dbcs(dbc_dir)
        sql_path = _write_template_sql(os.path.join(tmp, 'world.sql'))

        result = generate_creature_maps(dbc_dir, sql_path, out_dir,
                                        cleanup_invalid=False, write_toc=False)
        assert result['overlay'].is_empty()
        assert result['sql_path'] is None
        assert result['toc_path'] is None
        # 5002 keeps its broken reference; only display 100 has a path
        assert result['index'].variants_map.entries == ((5002, (100, 999)),)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main():
    print("=" * 70)
    print("Creature Assets / DBC / SQL Test Suite")
    print("=" * 70)

    tests = [(name[5:], fn) for name, fn in sorted(globals().items())
             if name.startswith('test_') and callable(fn)]
    for name, fn in tests:
        _test(name, fn)

    print("\n" + "=" * 70)
    print("Results: {} passed, {} failed".format(_PASSED, _FAILED))
    if _ERRORS:
        print("\nFailures:")
        for name, err in _ERRORS:
            print("  {} -- {}".format(name, err))
    print("=" * 70)
    return 0 if _FAILED == 0 else 1


if __name__ == '__main__':
    sys.exit(main())
