"""
@what Use cases create entities with Entity.from() instead of new Entity()
@why A single factory method keeps construction in one place and survives constructor changes
@failure Reports new X() where X is a domain entity (or any PascalCase class when no entity is indexed)
"""

import re

from guardrails.checker import NodeKind, create_checker, kind_of

PASCAL_CASE = re.compile(r"^[A-Z][a-zA-Z0-9]*$")
EXCLUDED_CLASSES = frozenset({"Date", "Error", "Map", "Set", "Promise", "Array", "URL", "RegExp"})


def _is_entity(class_name, ctx):
    known = ctx.project.entity_names() if ctx.project is not None else frozenset()
    if known:
        return class_name in known
    return PASCAL_CASE.match(class_name) is not None and class_name not in EXCLUDED_CLASSES


def _visit(node, ctx):
    if kind_of(node) is not NodeKind.NEW:
        return

    file_name = ctx.file_path
    if ".test." in file_name or ".dummy." in file_name or file_name.endswith("interfaces.ts"):
        return

    constructor = node.child_by_field_name("constructor")
    if kind_of(constructor) is not NodeKind.IDENTIFIER:
        return

    class_name = ctx.text(constructor)
    if _is_entity(class_name, ctx):
        ctx.report(
            node,
            f"new {class_name}() used to create an entity.\n"
            f"- Bad: const entity = new {class_name}({{ ... }});\n"
            f"- Good: const entity = {class_name}.from({{ ... }});",
        )


policy_check = create_checker(file_pattern=r"-use-case\.ts$", visitor=_visit)
