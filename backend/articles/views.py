import logging

from django.conf import settings
from django.contrib import messages
from django.http import Http404, HttpResponseRedirect
from django.shortcuts import get_object_or_404, redirect, render
from django.urls import reverse
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from .forms import ArticleForm, CommentForm
from .models import Article, Comment
from .permissions import can_delete_comment, can_manage_articles, deny_unless
from .tokens import TOKEN_FIELD, article_delete_intent, check_token, comment_delete_intent

logger = logging.getLogger(__name__)


class HttpResponseSeeOther(HttpResponseRedirect):
    status_code = 303


def _see_other_to_index():
    return HttpResponseSeeOther(reverse("articles:index"))


def _deny_unless_admin(request, message: str) -> None:
    allowed = can_manage_articles(request.user)
    if not allowed:
        logger.warning(
            "Denied article management",
            extra={"user_id": request.user.pk, "path": request.path},
        )
    deny_unless(allowed, message)


@require_GET
def article_index(request):
    """List every article, or only the ones matching ``?q=``."""

    query = request.GET.get("q", "")

    if query:
        articles = Article.objects.search(query)
    elif getattr(settings, "ARTICLES_SORT_UNFILTERED", True):
        articles = Article.objects.newest_first()
    else:
        articles = Article.objects.order_by("pk")

    return render(
        request,
        "articles/index.html",
        {"articles": articles.select_related("category"), "query": query},
    )


@require_http_methods(["GET", "POST"])
def article_new(request):
    _deny_unless_admin(request, "Only administrators can create articles.")

    if request.method == "POST":
        form = ArticleForm(request.POST)
        if form.is_valid():
            article = form.save()
            logger.info(
                "Article created",
                extra={"article_id": article.pk, "user_id": request.user.pk},
            )
            return _see_other_to_index()
    else:
        form = ArticleForm()

    return render(request, "articles/new.html", {"form": form})


@require_http_methods(["GET", "POST"])
def article_show(request, pk: int):
    """Show an article with its comments; signed-in users may comment."""

    article = get_object_or_404(Article.objects.select_related("category"), pk=pk)

    form = None
    if request.user.is_authenticated:
        comment = Comment(user=request.user, article=article)
        if request.method == "POST":
            form = CommentForm(request.POST, instance=comment)
            if form.is_valid():
                form.save()
                logger.info(
                    "Comment created",
                    extra={
                        "article_id": article.pk,
                        "comment_id": comment.pk,
                        "user_id": request.user.pk,
                    },
                )
                return redirect("articles:show", pk=article.pk)
        else:
            form = CommentForm(instance=comment)

    comments = [
        (comment, can_delete_comment(request.user, comment))
        for comment in article.comments.select_related("user")
    ]

    return render(
        request,
        "articles/show.html",
        {
            "article": article,
            "comments": comments,
            "comment_form": form,
        },
    )


@require_http_methods(["GET", "POST"])
def article_edit(request, pk: int):
    article = get_object_or_404(Article, pk=pk)
    _deny_unless_admin(request, "Only administrators can edit articles.")

    if request.method == "POST":
        form = ArticleForm(request.POST, instance=article)
        if form.is_valid():
            form.save()
            logger.info(
                "Article updated",
                extra={"article_id": article.pk, "user_id": request.user.pk},
            )
            return _see_other_to_index()
    else:
        form = ArticleForm(instance=article)

    return render(request, "articles/edit.html", {"article": article, "form": form})


@require_POST
def article_delete(request, pk: int):
    article = get_object_or_404(Article, pk=pk)
    _deny_unless_admin(request, "Only administrators can delete articles.")

    token = request.POST.get(TOKEN_FIELD)
    if not check_token(request.session, article_delete_intent(article.pk), token):
        logger.warning(
            "Rejected article deletion with an invalid token",
            extra={"article_id": article.pk, "user_id": request.user.pk},
        )
        messages.error(request, "Invalid CSRF token.")
        return _see_other_to_index()

    article_id = article.pk
    messages.info(request, f"Deleting article {article_id}.")
    try:
        article.delete()
    except Exception as exc:
        logger.exception("Unable to delete article", extra={"article_id": article_id})
        messages.error(request, f"Error while deleting the article: {exc}")
    else:
        logger.info(
            "Article deleted",
            extra={"article_id": article_id, "user_id": request.user.pk},
        )
        messages.success(request, "The article was deleted successfully.")

    return _see_other_to_index()


@require_POST
def comment_delete(request, pk: int, comment_pk: int):
    article = get_object_or_404(Article, pk=pk)
    comment = Comment.objects.filter(pk=comment_pk).first()

    if comment is None or comment.article_id != article.pk:
        raise Http404("Comment not found.")

    deny_unless(
        can_delete_comment(request.user, comment),
        "You are not allowed to delete this comment.",
    )

    token = request.POST.get(TOKEN_FIELD)
    if check_token(request.session, comment_delete_intent(comment.pk), token):
        comment_id = comment.pk
        comment.delete()
        logger.info(
            "Comment deleted",
            extra={
                "article_id": article.pk,
                "comment_id": comment_id,
                "user_id": request.user.pk,
            },
        )
    else:
        logger.warning(
            "Ignored comment deletion with an invalid token",
            extra={"comment_id": comment.pk, "user_id": request.user.pk},
        )

    return redirect("articles:show", pk=article.pk)
