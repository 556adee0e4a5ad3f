"""Print a summary of the contents of a binary DMX file."""
from typing import Counter, List, Optional
import argparse
import collections
import os
import sys

from dmxparser import logger
from dmxparser.decoder import parse
from dmxparser.dmx import Document
from dmxparser.errors import DMXError
from dmxparser.formats import vmap


LOGGER = logger.get_logger(__name__)


def summarise(doc: Document, limit: Optional[int] = None) -> List[str]:
    """Produce the lines describing the document."""
    lines = [
        f'Encoding: {doc.encoding} {doc.encoding_version}',
        f'Format: {doc.format_name} {doc.format_version}',
        f'Prefix attributes: {sum(map(len, doc.prefix))}',
        f'Strings: {len(doc.strings)}',
        f'Elements: {len(doc)}',
    ]
    if len(doc):
        lines.append(f'Root: {doc.root.type} "{doc.root.name}"')
    counts: Counter[str] = collections.Counter(elem.type for elem in doc)
    for el_type, count in counts.most_common(limit):
        lines.append(f'  {count:>8} {el_type}')
    return lines


def summarise_vmap(root: vmap.RootElement) -> List[str]:
    """Describe the contents of a map."""
    nodes: Counter[str] = collections.Counter()
    todo: List[object] = list(root.world.children)
    while todo:
        node = todo.pop()
        if isinstance(node, vmap.UnknownNode):
            nodes[node.type] += 1
        else:
            nodes[type(node).__name__] += 1
            if isinstance(node, vmap.MapNode):
                todo.extend(node.children)
    lines = [
        f'Editor version: {root.editor_version} (build {root.editor_build})',
        f'Prefab: {root.is_prefab}',
        f'Map variables: {len(root.map_variables.names)}',
        f'World connections: {len(root.world.connections)}',
    ]
    for name, count in sorted(nodes.items()):
        lines.append(f'  {count:>8} {name}')
    return lines


def main(args: List[str]) -> int:
    """Main script."""
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "file",
        help="the DMX file to read.",
    )
    parser.add_argument(
        "-b", "--borrow",
        help="read the whole file into memory, instead of reading incrementally.",
        action='store_true',
    )
    parser.add_argument(
        "--vmap",
        help="also convert the file as a Hammer map, and summarise that.",
        action='store_true',
    )
    parser.add_argument(
        "-l", "--limit",
        help="only show this many of the most common element types.",
        type=int,
        default=None,
    )
    result = parser.parse_args(args)

    LOGGER.debug('Reading "{}" (borrow={})', result.file, result.borrow)
    with logger.context(os.path.basename(result.file)):
        try:
            doc = parse(result.file, borrow=result.borrow)
            lines = summarise(doc, result.limit)
            if result.vmap:
                lines += summarise_vmap(vmap.read_vmap(doc))
        except (DMXError, OSError) as exc:
            LOGGER.error('Could not read "{}":\n{}', result.file, exc)
            return 1
    for line in lines:
        print(line)
    return 0


if __name__ == '__main__':
    logger.init_logging()
    sys.exit(main(sys.argv[1:]))
