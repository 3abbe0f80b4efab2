"""
@what Domain models import only from @/domain/ and @/util/
@why The domain layer must not depend on frameworks, infrastructure or other layers
@failure Reports every import whose path is outside @/domain/ and @/util/
"""

import re

from guardrails.checker import NodeKind, create_checker, kind_of, string_value

ALLOWED_IMPORT_PATTERNS = (
    re.compile(r"^@/domain/"),
    re.compile(r"^@/util/"),
)


def _visit(node, ctx):
    match kind_of(node):
        case NodeKind.IMPORT:
            source = node.child_by_field_name("source")
            if source is None:
                return
            import_path = string_value(source, ctx.source)
            if not any(pattern.match(import_path) for pattern in ALLOWED_IMPORT_PATTERNS):
                ctx.report(
                    node,
                    f'Import "{import_path}" is not allowed in the domain model. '
                    "Only @/domain/ and @/util/ may be imported.",
                )
        case _:
            return


policy_check = create_checker(file_pattern=r"\.(entity|vo|repository)\.ts$", visitor=_visit)
