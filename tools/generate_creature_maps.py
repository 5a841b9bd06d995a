#!/usr/bin/env python
"""
Generate the Creature Model Viewer lookup tables.

Reads CreatureModelData.dbc / CreatureDisplayInfo.dbc from a DBFilesClient
directory and creature_template rows from a SQL dump, optionally creates
creatures for every .m2 under an assets directory, and writes the four
.lua map files (plus the addon .toc) into the output directory.

Usage:
  python generate_creature_maps.py --dbc-dir <DBFilesClient> --templates <creature_template.sql> -o <addon_dir>
  python generate_creature_maps.py --dbc-dir dbc --templates world.sql -o addon \\
      --assets modules/my-module/assets --module my-module --spawns
"""

import argparse
import logging
import os
import sys

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from creature_maps import generate_creature_maps, DEFAULT_MODULE_NAME


def build_parser():
    parser = argparse.ArgumentParser(
        description='Creature Model Viewer map generator for WoW 3.3.5a (WotLK)')
    parser.add_argument('--dbc-dir', required=True,
                        help='DBFilesClient directory (CreatureModelData.dbc, '
                             'CreatureDisplayInfo.dbc)')
    parser.add_argument('--templates', required=True,
                        help='SQL file with creature_template INSERT statements')
    parser.add_argument('-o', '--output', required=True,
                        help='Addon directory for the generated .lua files')
    parser.add_argument('--assets',
                        help='Assets directory scanned for .m2 models')
    parser.add_argument('--module', default=DEFAULT_MODULE_NAME,
                        help='Module name used for generated creatures '
                             '(default: %(default)s)')
    parser.add_argument('--sql-output',
                        help='Where to write generated SQL '
                             '(default: <output>/creature_models.sql)')
    parser.add_argument('--start-entry', type=int,
                        help='First creature_template entry for new creatures')
    parser.add_argument('--start-guid', type=int,
                        help='First creature GUID for new spawns '
                             '(default: past the highest GUID in --templates)')
    parser.add_argument('--id-registry',
                        help='JSON file of IDs given to assets on earlier runs '
                             '(default: <dbc-dir>/creature_ids.json)')
    parser.add_argument('--spawns', action='store_true',
                        help='Spawn created creatures on a grid')
    parser.add_argument('--no-cleanup', action='store_true',
                        help='Keep templates with broken display references')
    parser.add_argument('--no-toc', action='store_true',
                        help='Do not write the addon .toc file')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Debug logging')
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(levelname)s %(name)s: %(message)s',
    )

    result = generate_creature_maps(
        dbc_dir=args.dbc_dir,
        template_sql=args.templates,
        output_dir=args.output,
        assets_root=args.assets,
        module_name=args.module,
        sql_output=args.sql_output,
        start_entry=args.start_entry,
        start_guid=args.start_guid,
        enable_spawns=args.spawns,
        cleanup_invalid=not args.no_cleanup,
        write_toc=not args.no_toc,
        id_registry=args.id_registry,
    )

    print("Written: {}".format(', '.join(
        os.path.basename(p) for p in result['written'])))
    if result['removed_entries']:
        print("Removed {} invalid creature templates".format(
            len(result['removed_entries'])))
    if result['sql_path']:
        print("SQL: {}".format(result['sql_path']))
    return 0


if __name__ == '__main__':
    sys.exit(main())
