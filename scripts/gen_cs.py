#!/usr/bin/env python3
"""
gen_cs.py - C# binding generator entry point

Generates C# bindings from a compiled WebAssembly module, or from a
side-channel declaration file written by --dump-declarations.

Usage:
    python scripts/gen_cs.py MODULE.wasm [-o Bindings.cs] [--dll-name NAME]
                             [--class-name NAME] [--namespace NS] [--ignore ID ...]
    python scripts/gen_cs.py declarations.json -o Bindings.cs
"""

import argparse
import logging
import os
import sys

from cs_bindgen import (
    BindgenError, Generator, GeneratorConfig, load_declarations, write_declarations_file,
)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Generate C# bindings for a WebAssembly module')
    parser.add_argument('input',
                        help='Compiled module (.wasm/.wat) or declaration file (.json)')
    parser.add_argument('-o', '--output', default=None,
                        help='Output C# file (default: stdout)')
    parser.add_argument('--dll-name', default=None,
                        help='Library name used in DllImport (default: input file stem)')
    parser.add_argument('--class-name', default=None,
                        help='Name of the class holding free functions (default: PascalCase dll name)')
    parser.add_argument('--namespace', default=None,
                        help='Namespace wrapping the generated code')
    parser.add_argument('--ignore', action='append', default=[], metavar='ID',
                        help='Export identifier to skip (repeatable)')
    parser.add_argument('--dump-declarations', default=None, metavar='PATH',
                        help='Also write the recovered declarations as a JSON file')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Enable debug logging')
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s',
    )

    # Progress goes to stdout only when the source does not
    report = print if args.output else (lambda *a: None)

    dll_name = args.dll_name or os.path.splitext(os.path.basename(args.input))[0]
    config = GeneratorConfig(
        dll_name=dll_name,
        class_name=args.class_name,
        namespace=args.namespace,
        ignores=set(args.ignore),
    )

    try:
        report('=== Generating C# bindings:')
        declarations = load_declarations(args.input)
        report(f'  {args.input} => {len(declarations)} declarations')

        if args.dump_declarations:
            write_declarations_file(declarations, args.dump_declarations)
            report(f'  declarations => {args.dump_declarations}')

        gen = Generator(declarations, config)
        if args.output:
            gen.write(args.output)
            report(f'  {dll_name} => {args.output}')
        else:
            sys.stdout.write(gen.generate())
    except (BindgenError, OSError) as err:
        print(f'error: {err}', file=sys.stderr)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
