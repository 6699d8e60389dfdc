from django import template

from ..tokens import make_token

register = template.Library()


@register.simple_tag(takes_context=True)
def intent_token(context, action, object_id):
    """Render the per-action token, e.g. ``{% intent_token "delete" article.pk %}``."""

    return make_token(context["request"].session, f"{action}{object_id}")
