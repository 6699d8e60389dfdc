"""Per-action tokens guarding destructive POSTs.

A token is bound to an *intent* string such as ``"delete42"`` and to a random
secret kept in the requester's session, so a token issued for one article
cannot be replayed against another, nor from another session.
"""

from django.utils.crypto import constant_time_compare, get_random_string, salted_hmac

SESSION_KEY = "_articles_intent_secret"
KEY_SALT = "articles.tokens.intent"
TOKEN_FIELD = "_token"


def _session_secret(session, create: bool = True):
    secret = session.get(SESSION_KEY)
    if secret is None and create:
        secret = get_random_string(32)
        session[SESSION_KEY] = secret
    return secret


def make_token(session, intent: str) -> str:
    """Return the token for ``intent`` in this session, creating the secret if needed."""

    secret = _session_secret(session)
    return salted_hmac(KEY_SALT, f"{secret}:{intent}", algorithm="sha256").hexdigest()


def check_token(session, intent: str, token) -> bool:
    if not token:
        return False
    secret = _session_secret(session, create=False)
    if secret is None:
        return False
    expected = salted_hmac(KEY_SALT, f"{secret}:{intent}", algorithm="sha256").hexdigest()
    return constant_time_compare(expected, token)


def article_delete_intent(article_id) -> str:
    return f"delete{article_id}"


def comment_delete_intent(comment_id) -> str:
    return f"delete-comment{comment_id}"
