"""
Lua table formatting for the Creature Model Viewer addon files.

Every generated file holds one global associative table::

    -- Auto-generated ...
    CreatureModelPathMap = {
      [100] = "creature/rat/rat.m2",
      [101] = "creature/wolf/wolf.m2",
    }

:class:`LuaTable` keeps the entries as structured ``(key, value)`` pairs
together with their key set; text is only produced by :meth:`LuaTable.lines`.
"""


def escape_lua_string(s):
    """Escape backslashes and double quotes for a double-quoted Lua string."""
    return s.replace('\\', '\\\\').replace('"', '\\"')


def format_lua_value(value):
    """
    Format a Python value as a Lua literal.

    ``int`` -> bare integer, ``str`` -> quoted string, list/tuple ->
    ``{a, b, c}`` with each item formatted recursively.
    """
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str):
        return '"{}"'.format(escape_lua_string(value))
    if isinstance(value, (list, tuple)):
        return '{' + ', '.join(format_lua_value(v) for v in value) + '}'
    raise TypeError("Cannot format {!r} as a Lua value".format(value))


def format_entry(key, value):
    """Format one table entry line: ``  [key] = value,``."""
    return '  [{:d}] = {},'.format(key, format_lua_value(value))


def _freeze(value):
    if isinstance(value, list):
        return tuple(value)
    return value


class LuaTable:
    """
    An immutable, ordered Lua table destined for one addon file.

    Attributes:
        name:    Global table name (also the file stem).
        header:  Tuple of comment lines written above the table.
        entries: Tuple of ``(int key, value)`` pairs in output order.
        keys:    Frozenset of the entry keys.
    """

    __slots__ = ('name', 'header', 'entries', 'keys')

    def __init__(self, name, header=(), entries=()):
        self.name = name
        self.header = tuple(header)
        self.entries = tuple((int(k), _freeze(v)) for k, v in entries)
        self.keys = frozenset(k for k, _ in self.entries)

    @property
    def filename(self):
        return '{}.lua'.format(self.name)

    def with_entries(self, pairs):
        """Return a new table with *pairs* appended after the current entries."""
        return LuaTable(self.name, self.header, self.entries + tuple(pairs))

    def lines(self):
        result = list(self.header)
        result.append('{} = {{'.format(self.name))
        result.extend(format_entry(k, v) for k, v in self.entries)
        result.append('}')
        return result

    def render(self):
        """Full file text, lines joined with ``\\n`` and no trailing newline."""
        return '\n'.join(self.lines())

    def get(self, key, default=None):
        for k, v in self.entries:
            if k == key:
                return v
        return default

    def __len__(self):
        return len(self.entries)

    def __contains__(self, key):
        return key in self.keys

    def __eq__(self, other):
        if not isinstance(other, LuaTable):
            return NotImplemented
        return (self.name, self.header, self.entries) == \
            (other.name, other.header, other.entries)

    def __ne__(self, other):
        result = self.__eq__(other)
        if result is NotImplemented:
            return result
        return not result

    def __hash__(self):
        return hash((self.name, self.header, self.entries))

    def __repr__(self):
        return "LuaTable({!r}, {} entries)".format(self.name, len(self.entries))


class LuaTableBuilder:
    """
    Accumulates entries for one table while the index is built.

    Keys are emitted at most once; :meth:`add` returns False for a key that
    was already added.
    """

    def __init__(self, name, header):
        self.name = name
        self.header = header
        self._entries = []
        self._keys = set()

    def add(self, key, value):
        if key in self._keys:
            return False
        self._keys.add(key)
        self._entries.append((key, value))
        return True

    def __contains__(self, key):
        return key in self._keys

    def build(self):
        return LuaTable(self.name, self.header, self._entries)
