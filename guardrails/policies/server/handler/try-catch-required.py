"""
@what Exported handlers wrap their body in try/catch
@why Unexpected exceptions must be logged and turned into a 500 response
@failure Reports exported *Handler functions whose body has no top-level try statement
"""

from guardrails.checker import NodeKind, children_of_kind, create_checker, field_text, kind_of


def _inner_function(node):
    """Innermost arrow function with a block body (buildXHandler = (deps) => async (c) => {...})."""
    while kind_of(node) is NodeKind.ARROW_FUNCTION:
        body = node.child_by_field_name("body")
        if kind_of(body) is NodeKind.ARROW_FUNCTION:
            node = body
            continue
        return node if kind_of(body) is NodeKind.BLOCK else None
    return None


def _visit(node, ctx):
    if kind_of(node) is not NodeKind.EXPORT:
        return

    declaration = node.child_by_field_name("declaration")
    if kind_of(declaration) is not NodeKind.VARIABLE_DECLARATION:
        return

    for declarator in declaration.named_children:
        if declarator.type != "variable_declarator":
            continue
        name = field_text(declarator, "name", ctx.source)
        if not name.endswith("Handler"):
            continue

        function = _inner_function(declarator.child_by_field_name("value"))
        if function is None:
            continue

        body = function.child_by_field_name("body")
        if not children_of_kind(body, NodeKind.TRY):
            ctx.report(
                declarator,
                f'Handler "{name}" has no try/catch.\n'
                "- Wrap the body in try/catch to capture unexpected exceptions.\n"
                "- Call logger.error() in the catch clause and return a 500 response.",
            )


policy_check = create_checker(file_pattern=r"-handler\.ts$", visitor=_visit)
