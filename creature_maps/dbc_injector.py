"""
DBC reader/injector for the creature tables of WoW WotLK 3.3.5a (build 12340).

Reads CreatureModelData.dbc and CreatureDisplayInfo.dbc for the map
generator, and appends new CreatureModelData, CreatureDisplayInfo and
Emotes records when creatures are created from model assets.

DBC binary layout:
  Header: 4-byte magic ('WDBC') + 4 uint32 (record_count, field_count,
          record_size, string_block_size) = 20 bytes total.
  Records: record_count * record_size bytes of fixed-size rows.
  String block: string_block_size bytes; offset 0 is always the null byte.
  Strings within records are stored as uint32 offsets into the string block.
"""

import logging
import os
import struct

log = logging.getLogger(__name__)


_HEADER_SIZE = 20  # 4 (magic) + 4*4 (counts)

# ---------------------------------------------------------------------------
# CreatureModelData.dbc field layout (3.0.1.8303 - 3.3.5.12340)
#
# Index  Field                        Type
# -----  ---------------------------  -------
#  0     ID                           uint32
#  1     Flags                        uint32
#  2     ModelName                    string
#  3     SizeClass                    uint32
#  4     ModelScale                   float
#  5     BloodID                      int32
#  6     FootprintTextureID           int32
#  7     FootprintTextureLength       float
#  8     FootprintTextureWidth        float
#  9     FootprintParticleScale       float
# 10     FoleyMaterialID              uint32
# 11     FootstepShakeSize            uint32
# 12     DeathThudShakeSize           uint32
# 13     SoundID                      uint32
# 14     CollisionWidth               float
# 15     CollisionHeight              float
# 16     MountHeight                  float
# 17-19  GeoBoxMin[3]                 float[3]
# 20-22  GeoBoxMax[3]                 float[3]
# 23     WorldEffectScale             float
# 24     AttachedEffectScale          float
# 25     MissileCollisionRadius       float
# 26     MissileCollisionPush         float
# 27     MissileCollisionRaise        float
# Total: 28 fields = 112 bytes
# ---------------------------------------------------------------------------
MODEL_DATA_DBC = 'CreatureModelData.dbc'
MODEL_DATA_FIELD_COUNT = 28
MODEL_DATA_RECORD_SIZE = MODEL_DATA_FIELD_COUNT * 4  # 112
MODEL_DATA_NAME_FIELD = 2

# ---------------------------------------------------------------------------
# CreatureDisplayInfo.dbc field layout (3.0.1.8303 - 3.3.5.12340)
#
# Index  Field                        Type
# -----  ---------------------------  -------
#  0     ID                           uint32
#  1     ModelID                      uint32  (CreatureModelData.ID)
#  2     SoundID                      uint32
#  3     ExtendedDisplayInfoID        uint32
#  4     CreatureModelScale           float
#  5     CreatureModelAlpha           uint32
#  6-8   TextureVariation[3]          string[3]
#  9     PortraitTextureName          string
# 10     BloodLevel                   uint32
# 11     BloodID                      uint32
# 12     NPCSoundID                   uint32
# 13     ParticleColorID              uint32
# 14     CreatureGeosetData           uint32
# 15     ObjectEffectPackageID        uint32
# Total: 16 fields = 64 bytes
# ---------------------------------------------------------------------------
DISPLAY_INFO_DBC = 'CreatureDisplayInfo.dbc'
DISPLAY_INFO_FIELD_COUNT = 16
DISPLAY_INFO_RECORD_SIZE = DISPLAY_INFO_FIELD_COUNT * 4  # 64
DISPLAY_INFO_MODEL_FIELD = 1
DISPLAY_INFO_TEXTURE_FIELDS = (6, 7, 8)

# ---------------------------------------------------------------------------
# Emotes.dbc field layout (3.3.5.12340)
#
#  0 ID, 1 EmoteSlashCommand (string), 2 AnimID, 3 EmoteFlags,
#  4 EmoteSpecProc, 5 EmoteSpecProcParam, 6 EventSoundID
# Total: 7 fields = 28 bytes
# ---------------------------------------------------------------------------
EMOTES_DBC = 'Emotes.dbc'
EMOTES_FIELD_COUNT = 7
EMOTES_RECORD_SIZE = EMOTES_FIELD_COUNT * 4  # 28

_SCHEMAS = {
    MODEL_DATA_DBC: (MODEL_DATA_FIELD_COUNT, MODEL_DATA_RECORD_SIZE),
    DISPLAY_INFO_DBC: (DISPLAY_INFO_FIELD_COUNT, DISPLAY_INFO_RECORD_SIZE),
    EMOTES_DBC: (EMOTES_FIELD_COUNT, EMOTES_RECORD_SIZE),
}


class DBCInjector:
    """
    Low-level DBC file reader/writer.
    Works directly with binary data without needing DBD definitions.
    """

    def __init__(self, filepath=None):
        self.magic = b'WDBC'
        self.record_count = 0
        self.field_count = 0
        self.record_size = 0
        self.string_block_size = 1
        self.records = []                       # list of bytes (raw record data)
        self.string_block = bytearray(b'\x00')  # offset 0 = empty string
        self._string_cache = {}                 # string -> offset

        if filepath is not None:
            self.read(filepath)

    # ------------------------------------------------------------------
    # I/O
    # ------------------------------------------------------------------

    def read(self, filepath):
        """Read an existing DBC file from *filepath*."""
        with open(filepath, 'rb') as f:
            data = f.read()

        if len(data) < _HEADER_SIZE:
            raise ValueError("File too small to be a valid DBC: {}".format(filepath))

        magic = data[0:4]
        if magic != b'WDBC':
            raise ValueError(
                "Bad magic in {}: expected b'WDBC', got {!r}".format(filepath, magic)
            )

        self.magic = magic
        (self.record_count, self.field_count, self.record_size,
         self.string_block_size) = struct.unpack_from('<4I', data, 4)

        records_end = _HEADER_SIZE + self.record_count * self.record_size
        if records_end + self.string_block_size > len(data):
            raise ValueError(
                "Truncated DBC {}: header declares {} bytes, file has {}".format(
                    filepath, records_end + self.string_block_size, len(data)))

        self.records = [
            data[offset:offset + self.record_size]
            for offset in range(_HEADER_SIZE, records_end, self.record_size)
        ] if self.record_size else []

        self.string_block = bytearray(
            data[records_end:records_end + self.string_block_size])

        # Rebuild string cache so add_string keeps deduplicating
        self._string_cache = {}
        pos = 0
        while pos < len(self.string_block):
            end = self.string_block.find(b'\x00', pos)
            if end == -1:
                break
            s = self.string_block[pos:end].decode('utf-8', errors='replace')
            if s and s not in self._string_cache:
                self._string_cache[s] = pos
            pos = end + 1

        log.debug("Read %s: %d records, %d fields", filepath,
                  self.record_count, self.field_count)

    def write(self, filepath):
        """Write the DBC file back to disk at *filepath*."""
        self.record_count = len(self.records)
        self.string_block_size = len(self.string_block)

        with open(filepath, 'wb') as f:
            f.write(self.magic)
            f.write(struct.pack('<4I', self.record_count, self.field_count,
                                self.record_size, self.string_block_size))
            for rec in self.records:
                f.write(rec)
            f.write(self.string_block)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def get_max_id(self):
        """Return the maximum ID (first uint32 of each record), or 0."""
        return self.find_max_field(0)

    def find_max_field(self, field_index):
        """Return the maximum uint32 value at *field_index* across all records."""
        max_val = 0
        offset = field_index * 4
        for rec in self.records:
            if offset + 4 <= len(rec):
                val = struct.unpack_from('<I', rec, offset)[0]
                if val > max_val:
                    max_val = val
        return max_val

    def add_string(self, s):
        """
        Add a string to the string block and return its offset.
        Empty or None strings return offset 0 (the null byte).
        """
        if not s:
            return 0
        if s in self._string_cache:
            return self._string_cache[s]

        offset = len(self.string_block)
        self.string_block.extend(s.encode('utf-8') + b'\x00')
        self._string_cache[s] = offset
        return offset

    def get_string(self, offset):
        """Return the null-terminated string at *offset* in the string block."""
        if offset <= 0 or offset >= len(self.string_block):
            return ''
        end = self.string_block.find(b'\x00', offset)
        if end == -1:
            end = len(self.string_block)
        return self.string_block[offset:end].decode('utf-8', errors='replace')

    def get_record_field(self, record_index, field_index, fmt='<I'):
        """Read a single field from a record. Default format is uint32."""
        return struct.unpack_from(fmt, self.records[record_index], field_index * 4)[0]

    def get_record_string(self, record_index, field_index):
        """Resolve a string-offset field of a record."""
        return self.get_string(self.get_record_field(record_index, field_index))

    def iter_ids(self):
        """Yield ``(record_index, id)`` for every record."""
        for i, rec in enumerate(self.records):
            yield i, struct.unpack_from('<I', rec, 0)[0]


def ensure_dbc(dbc_dir, dbc_name):
    """
    Return the path of *dbc_name* in *dbc_dir*, creating an empty DBC with
    the known 3.3.5 layout when the file does not exist yet.
    """
    filepath = os.path.join(dbc_dir, dbc_name)
    if not os.path.isfile(filepath):
        field_count, record_size = _SCHEMAS[dbc_name]
        os.makedirs(dbc_dir, exist_ok=True)
        dbc = DBCInjector()
        dbc.field_count = field_count
        dbc.record_size = record_size
        dbc.write(filepath)
        log.info("Created empty %s in %s", dbc_name, dbc_dir)
    return filepath


# ---------------------------------------------------------------------------
# Record builders
# ---------------------------------------------------------------------------

def _build_creature_model_record(
    model_id,
    model_name_offset,
    flags=0,
    size_class=1,
    model_scale=1.0,
    blood_id=-1,
    footprint_texture_id=-1,
    footprint_texture_length=18.0,
    footprint_texture_width=0.0,
    footprint_particle_scale=0.0,
    foley_material_id=0,
    footstep_shake_size=0,
    death_thud_shake_size=0,
    sound_id=0,
    collision_width=0.5,
    collision_height=2.0,
    mount_height=0.0,
    geo_box_min=(0.0, 0.0, 0.0),
    geo_box_max=(0.0, 0.0, 0.0),
    world_effect_scale=1.0,
    attached_effect_scale=1.0,
    missile_collision_radius=0.0,
    missile_collision_push=0.0,
    missile_collision_raise=0.0,
):
    """
    Build a raw 112-byte CreatureModelData.dbc record.

    The model name must already be an offset into the string block.
    """
    buf = bytearray()

    # 0-3: ID, Flags, ModelName, SizeClass
    buf += struct.pack('<4I', model_id, flags, model_name_offset, size_class)
    # 4: ModelScale
    buf += struct.pack('<f', model_scale)
    # 5-6: BloodID, FootprintTextureID (signed, -1 = none)
    buf += struct.pack('<2i', blood_id, footprint_texture_id)
    # 7-9: FootprintTextureLength, FootprintTextureWidth, FootprintParticleScale
    buf += struct.pack('<3f', footprint_texture_length, footprint_texture_width,
                       footprint_particle_scale)
    # 10-13: FoleyMaterialID, FootstepShakeSize, DeathThudShakeSize, SoundID
    buf += struct.pack('<4I', foley_material_id, footstep_shake_size,
                       death_thud_shake_size, sound_id)
    # 14-16: CollisionWidth, CollisionHeight, MountHeight
    buf += struct.pack('<3f', collision_width, collision_height, mount_height)
    # 17-22: GeoBoxMin[3], GeoBoxMax[3]
    buf += struct.pack('<3f', *geo_box_min)
    buf += struct.pack('<3f', *geo_box_max)
    # 23-27
    buf += struct.pack('<5f', world_effect_scale, attached_effect_scale,
                       missile_collision_radius, missile_collision_push,
                       missile_collision_raise)

    assert len(buf) == MODEL_DATA_RECORD_SIZE, (
        "CreatureModelData record size mismatch: expected {}, got {}".format(
            MODEL_DATA_RECORD_SIZE, len(buf))
    )
    return bytes(buf)


def _build_creature_display_record(
    display_id,
    model_id,
    texture_offsets=(0, 0, 0),
    sound_id=0,
    extended_display_info_id=0,
    creature_model_scale=1.0,
    creature_model_alpha=255,
    portrait_texture_offset=0,
    blood_level=0,
    blood_id=0,
    npc_sound_id=0,
    particle_color_id=0,
    creature_geoset_data=0,
    object_effect_package_id=0,
):
    """
    Build a raw 64-byte CreatureDisplayInfo.dbc record.

    Texture and portrait names must already be string block offsets.
    """
    buf = bytearray()

    # 0-3: ID, ModelID, SoundID, ExtendedDisplayInfoID
    buf += struct.pack('<4I', display_id, model_id, sound_id,
                       extended_display_info_id)
    # 4: CreatureModelScale
    buf += struct.pack('<f', creature_model_scale)
    # 5: CreatureModelAlpha
    buf += struct.pack('<I', creature_model_alpha)
    # 6-8: TextureVariation[3]
    buf += struct.pack('<3I', *texture_offsets)
    # 9: PortraitTextureName
    buf += struct.pack('<I', portrait_texture_offset)
    # 10-15
    buf += struct.pack('<6I', blood_level, blood_id, npc_sound_id,
                       particle_color_id, creature_geoset_data,
                       object_effect_package_id)

    assert len(buf) == DISPLAY_INFO_RECORD_SIZE, (
        "CreatureDisplayInfo record size mismatch: expected {}, got {}".format(
            DISPLAY_INFO_RECORD_SIZE, len(buf))
    )
    return bytes(buf)


def _build_emote_record(emote_id, slash_command_offset, anim_id, flags=0,
                        spec_proc=0, spec_proc_param=0, event_sound_id=0):
    """Build a raw 28-byte Emotes.dbc record."""
    return struct.pack('<7I', emote_id, slash_command_offset, anim_id, flags,
                       spec_proc, spec_proc_param, event_sound_id)


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

class DBCSession:
    """
    Edits the creature DBCs of one DBFilesClient directory in memory.

    Each DBC is read on first use and written back once, by :meth:`flush`
    or when the ``with`` block exits without an error.  Files that were
    only read are not rewritten.

    Usage::

        with DBCSession(dbc_dir) as dbc:
            model_id = dbc.add_creature_model('Creature\\Rat\\Rat.mdx')
            dbc.add_creature_display(model_id, textures=['RatSkin'])
    """

    def __init__(self, dbc_dir):
        self.dbc_dir = dbc_dir
        self._files = {}      # dbc_name -> DBCInjector
        self._dirty = set()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is None:
            self.flush()
        return False

    def open(self, dbc_name):
        """Return the in-memory :class:`DBCInjector` for *dbc_name*."""
        dbc = self._files.get(dbc_name)
        if dbc is None:
            dbc = DBCInjector(ensure_dbc(self.dbc_dir, dbc_name))
            self._files[dbc_name] = dbc
        return dbc

    def flush(self):
        """Write every modified DBC back to disk."""
        for dbc_name in sorted(self._dirty):
            filepath = os.path.join(self.dbc_dir, dbc_name)
            dbc = self._files[dbc_name]
            dbc.write(filepath)
            log.info("Wrote %s (%d records)", filepath, len(dbc.records))
        self._dirty.clear()

    def _append(self, dbc_name, record):
        self._files[dbc_name].records.append(record)
        self._dirty.add(dbc_name)

    def add_creature_model(self, model_path, model_id=None, **fields):
        """
        Add a CreatureModelData record.

        Args:
            model_path: Client model path, e.g. ``Creature\\Rat\\Rat.mdx``.
            model_id: Specific ID, or None for auto (max_id + 1).
            **fields: Overrides for the record builder keyword arguments
                (``size_class``, ``model_scale``, ``collision_height``, ...).

        Returns:
            int: The assigned model ID.
        """
        dbc = self.open(MODEL_DATA_DBC)
        if model_id is None:
            model_id = dbc.get_max_id() + 1

        self._append(MODEL_DATA_DBC, _build_creature_model_record(
            model_id=model_id,
            model_name_offset=dbc.add_string(model_path),
            **fields
        ))
        log.debug("Registered CreatureModelData %d: %s", model_id, model_path)
        return model_id

    def add_creature_display(self, model_id, display_id=None, textures=None,
                             portrait_texture=None, **fields):
        """
        Add a CreatureDisplayInfo record.

        Args:
            model_id: CreatureModelData ID the display renders.
            display_id: Specific ID, or None for auto (max_id + 1).
            textures: Up to three TextureVariation names.
            portrait_texture: Optional portrait texture name.
            **fields: Overrides for the record builder keyword arguments.

        Returns:
            int: The assigned display ID.
        """
        textures = list(textures or [])
        if len(textures) > 3:
            raise ValueError(
                "CreatureDisplayInfo holds at most 3 textures, got {}".format(len(textures)))

        dbc = self.open(DISPLAY_INFO_DBC)
        if display_id is None:
            display_id = dbc.get_max_id() + 1

        offsets = [dbc.add_string(t) for t in textures]
        offsets += [0] * (3 - len(offsets))

        self._append(DISPLAY_INFO_DBC, _build_creature_display_record(
            display_id=display_id,
            model_id=model_id,
            texture_offsets=tuple(offsets),
            portrait_texture_offset=dbc.add_string(portrait_texture),
            **fields
        ))
        log.debug("Registered CreatureDisplayInfo %d (model %d)", display_id, model_id)
        return display_id

    def add_emote(self, anim_id, emote_id=None, slash_command='', flags=0,
                  spec_proc=0, spec_proc_param=0, event_sound_id=0):
        """Add an Emotes record; returns the assigned emote ID."""
        dbc = self.open(EMOTES_DBC)
        if emote_id is None:
            emote_id = dbc.get_max_id() + 1

        self._append(EMOTES_DBC, _build_emote_record(
            emote_id, dbc.add_string(slash_command), anim_id, flags,
            spec_proc, spec_proc_param, event_sound_id))
        log.debug("Registered emote %d (anim %d)", emote_id, anim_id)
        return emote_id

    def find_emote(self, anim_id, spec_proc=None):
        """
        ID of the first emote playing *anim_id* (and using *spec_proc*,
        when given), or None.
        """
        dbc = self.open(EMOTES_DBC)
        for i, emote_id in dbc.iter_ids():
            if dbc.get_record_field(i, 2) != anim_id:
                continue
            if spec_proc is None or dbc.get_record_field(i, 4) == spec_proc:
                return emote_id
        return None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def register_creature_model(dbc_dir, model_path, model_id=None, **fields):
    """
    Register a new model in CreatureModelData.dbc and write the file.

    See :meth:`DBCSession.add_creature_model`; use a session to add many
    records with a single write.
    """
    with DBCSession(dbc_dir) as dbc:
        return dbc.add_creature_model(model_path, model_id, **fields)


def register_creature_display(dbc_dir, model_id, display_id=None,
                              textures=None, portrait_texture=None, **fields):
    """
    Register a new display in CreatureDisplayInfo.dbc and write the file.

    Raises:
        ValueError: If more than three textures are given.
    """
    with DBCSession(dbc_dir) as dbc:
        return dbc.add_creature_display(model_id, display_id, textures,
                                        portrait_texture, **fields)


def register_emote(dbc_dir, anim_id, emote_id=None, slash_command='',
                   flags=0, spec_proc=0, spec_proc_param=0, event_sound_id=0):
    """Register a new emote in Emotes.dbc; returns the assigned emote ID."""
    with DBCSession(dbc_dir) as dbc:
        return dbc.add_emote(anim_id, emote_id, slash_command, flags,
                             spec_proc, spec_proc_param, event_sound_id)
