"""
@what Components do not call fetch directly
@why Server access goes through the generated API client so errors and types are handled in one place
@failure Reports fetch() and window.fetch() calls in .tsx components
"""

from guardrails.checker import NodeKind, create_checker, kind_of

FETCH_CALLEES = frozenset({"fetch", "window.fetch", "globalThis.fetch"})


def _visit(node, ctx):
    match kind_of(node):
        case NodeKind.CALL:
            callee = node.child_by_field_name("function")
            if kind_of(callee) in (NodeKind.IDENTIFIER, NodeKind.MEMBER_ACCESS) and ctx.text(callee) in FETCH_CALLEES:
                ctx.report(node, "Direct fetch() call in a component. Use the API client instead.")
        case _:
            return


policy_check = create_checker(file_pattern=r"^(?!.*\.test\.tsx$).*\.tsx$", visitor=_visit)
