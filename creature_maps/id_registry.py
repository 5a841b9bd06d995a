"""
Persistent ``module:name -> id`` assignments for generated creatures.

The asset scanner appends records to the DBCs and rows to the world
database.  Recording which ID each asset received lets a later run find
and reuse those IDs instead of registering the same asset again.

The registry is a flat JSON object::

    {
      "creature-models:Beasts_Rat_CreatureDisplayInfo": 101,
      "creature-models:Beasts_Rat_CreatureTemplate": 90000
    }
"""

import json
import logging
import os

log = logging.getLogger(__name__)


def load_json(filepath):
    """Load and parse a JSON file."""
    with open(filepath, 'r') as f:
        return json.load(f)


def save_json(filepath, data, indent=2):
    """Write *data* to a JSON file, creating parent directories as needed."""
    parent = os.path.dirname(filepath)
    if parent and not os.path.exists(parent):
        os.makedirs(parent)
    with open(filepath, 'w') as f:
        json.dump(data, f, indent=indent, sort_keys=True)


class IDRegistry:
    """
    ID assignments keyed by module and name.

    Args:
        filepath: JSON file to load from and save to.  None keeps the
            registry in memory only.

    Raises:
        ValueError: If the file does not hold a JSON object.
    """

    def __init__(self, filepath=None):
        self.filepath = filepath
        self.ids = {}
        self._changed = False

        if filepath is not None and os.path.isfile(filepath):
            data = load_json(filepath)
            if not isinstance(data, dict):
                raise ValueError(
                    "ID registry {} must hold a JSON object".format(filepath))
            self.ids = dict((str(k), int(v)) for k, v in data.items())
            log.debug("Loaded %d IDs from %s", len(self.ids), filepath)

    @staticmethod
    def _key(module, name):
        return '{}:{}'.format(module, name)

    def get(self, module, name):
        return self.ids.get(self._key(module, name))

    def set(self, module, name, value):
        key = self._key(module, name)
        if self.ids.get(key) != value:
            self.ids[key] = value
            self._changed = True

    def values(self, suffix=''):
        """All IDs whose name ends with *suffix*, across modules."""
        return [v for k, v in self.ids.items() if k.endswith(suffix)]

    def save(self):
        """Write the registry when it changed and has a file."""
        if self.filepath is None or not self._changed:
            return
        save_json(self.filepath, self.ids)
        self._changed = False
        log.info("Saved %d IDs to %s", len(self.ids), self.filepath)
