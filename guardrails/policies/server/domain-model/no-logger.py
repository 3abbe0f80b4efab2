"""
@what Domain models do not log
@why Logging is a side effect; it belongs to the application layer (use cases, handlers)
@failure Reports Logger imports and logger.* calls in entities, value objects and repositories
"""

from guardrails.checker import NodeKind, create_checker, field_text, kind_of, string_value, walk

LOGGER_NAMES = frozenset({"Logger", "logger"})


def _is_logger_module(import_path: str) -> bool:
    return "/logger" in import_path or "logger/" in import_path


def _visit(node, ctx):
    match kind_of(node):
        case NodeKind.IMPORT:
            source = node.child_by_field_name("source")
            if source is None or not _is_logger_module(string_value(source, ctx.source)):
                return
            for child in walk(node):
                if kind_of(child) is NodeKind.IMPORT_SPECIFIER and field_text(child, "name", ctx.source) in LOGGER_NAMES:
                    ctx.report(
                        node,
                        "Importing Logger in the domain model is not allowed. "
                        "Log from the application layer (use cases, handlers) instead.",
                    )
                    return
        case NodeKind.CALL:
            callee = node.child_by_field_name("function")
            if kind_of(callee) is not NodeKind.MEMBER_ACCESS:
                return
            target = callee.child_by_field_name("object")
            if kind_of(target) is NodeKind.IDENTIFIER and ctx.text(target) == "logger":
                ctx.report(
                    node,
                    "Logging from the domain model is not allowed. "
                    "Log from the application layer (use cases, handlers) instead.",
                )
        case _:
            return


policy_check = create_checker(file_pattern=r"\.(entity|vo|repository)\.ts$", visitor=_visit)
