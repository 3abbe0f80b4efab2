"""
@what UseCaseImpl classes define no method other than execute
@why The whole flow of a use case should read top to bottom inside execute
@failure Reports every method of a *UseCaseImpl class other than execute and the constructor
"""

from guardrails.checker import NodeKind, children_of_kind, create_checker, field_text, kind_of

ALLOWED_METHODS = frozenset({"execute", "constructor"})


def _visit(node, ctx):
    if kind_of(node) is not NodeKind.CLASS:
        return

    class_name = field_text(node, "name", ctx.source)
    if not class_name.endswith("UseCaseImpl"):
        return

    body = node.child_by_field_name("body")
    if body is None:
        return

    for member in children_of_kind(body, NodeKind.METHOD):
        method_name = field_text(member, "name", ctx.source)
        if method_name in ALLOWED_METHODS:
            continue
        ctx.report(
            member,
            f'UseCaseImpl class "{class_name}" has method "{method_name}" besides execute.\n'
            "- Write the whole flow inside execute.\n"
            "- Move complex logic into domain model methods.\n"
            "- Private helper methods are not allowed.",
        )


policy_check = create_checker(file_pattern=r"-use-case\.ts$", visitor=_visit)
