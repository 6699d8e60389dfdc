"""
Tests for the articles app.

Covers:
1. Article search and list ordering
2. Per-action tokens and authorization predicates
3. Article create / edit / delete handlers and their access checks
4. Article page with comment submission
5. Comment deletion (ownership, cross-article ids, tokens)
"""

from __future__ import annotations

import datetime
from pathlib import Path
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from django.contrib.messages import get_messages
from django.core.exceptions import PermissionDenied
from django.db import DatabaseError, connection
from django.db.models import QuerySet
from django.template.loader import get_template
from django.test import TestCase, override_settings
from django.urls import reverse

import blogsite

from .models import Article, Category, Comment
from .permissions import can_delete_comment, deny_unless, is_admin
from .tokens import (
    article_delete_intent,
    check_token,
    comment_delete_intent,
    make_token,
)

User = get_user_model()


def _make_article(category, title="Title", content="Content", published_on=None, author="Alice"):
    return Article.objects.create(
        category=category,
        title=title,
        content=content,
        author=author,
        published_on=published_on or datetime.date(2024, 1, 1),
    )


class ArticleTestCase(TestCase):
    """Shared fixtures: a category, an admin, and two regular users."""

    def setUp(self):
        self.category = Category.objects.create(name="News")
        self.admin = User.objects.create_user("admin", password="pw", is_staff=True)
        self.alice = User.objects.create_user("alice", password="pw")
        self.bob = User.objects.create_user("bob", password="pw")

    def token_for(self, intent: str) -> str:
        session = self.client.session
        token = make_token(session, intent)
        session.save()
        return token

    @staticmethod
    def messages_of(response):
        return [(m.level_tag, m.message) for m in get_messages(response.wsgi_request)]


# =============================================================================
# Search / Repository Tests
# =============================================================================


class ArticleSearchTest(ArticleTestCase):
    """Tests for ArticleQuerySet.search and newest_first."""

    def test_matches_title_substring(self):
        article = _make_article(self.category, title="Django tips", content="Nothing")
        self.assertIn(article, Article.objects.search("ngo ti"))

    def test_matches_content_substring(self):
        article = _make_article(self.category, title="Untitled", content="All about ORMs")
        self.assertIn(article, Article.objects.search("about"))

    def test_match_is_case_insensitive(self):
        article = _make_article(self.category, title="Hello World")
        self.assertIn(article, Article.objects.search("hello"))

    def test_no_match_returns_empty(self):
        _make_article(self.category, title="Alpha", content="Beta")
        _make_article(self.category, title="Gamma", content="Delta")
        self.assertFalse(Article.objects.search("zeta").exists())

    def test_results_ordered_by_date_descending(self):
        middle = _make_article(
            self.category, title="python 2", published_on=datetime.date(2023, 1, 1)
        )
        newest = _make_article(
            self.category, title="python 3", published_on=datetime.date(2024, 6, 1)
        )
        oldest = _make_article(
            self.category, title="python 1", published_on=datetime.date(2022, 3, 1)
        )
        _make_article(self.category, title="ruby", published_on=datetime.date(2025, 1, 1))

        self.assertEqual(list(Article.objects.search("python")), [newest, middle, oldest])

    def test_newest_first_breaks_ties_by_id(self):
        first = _make_article(self.category, title="A")
        second = _make_article(self.category, title="B")
        self.assertEqual(list(Article.objects.newest_first()), [second, first])


# =============================================================================
# Model Tests
# =============================================================================


class ArticleModelTest(ArticleTestCase):
    def test_delete_removes_comments(self):
        article = _make_article(self.category)
        other = _make_article(self.category, title="Other")
        Comment.objects.create(article=article, user=self.alice, body="first")
        Comment.objects.create(article=article, user=self.bob, body="second")
        kept = Comment.objects.create(article=other, user=self.bob, body="elsewhere")

        article.delete()

        self.assertFalse(Article.objects.filter(pk=article.pk).exists())
        self.assertEqual(list(Comment.objects.all()), [kept])


class CommentModelTest(ArticleTestCase):
    def setUp(self):
        super().setUp()
        self.article = _make_article(self.category)
        self.comment = Comment.objects.create(article=self.article, user=self.alice, body="Hi")

    def test_created_at_is_set_on_insert(self):
        self.assertIsNotNone(self.comment.created_at)

    def test_body_can_be_edited(self):
        comment = Comment.objects.get(pk=self.comment.pk)
        comment.body = "Edited"
        comment.save()
        self.assertEqual(Comment.objects.get(pk=self.comment.pk).body, "Edited")

    def test_article_cannot_be_reassigned(self):
        other = _make_article(self.category, title="Other")
        comment = Comment.objects.get(pk=self.comment.pk)
        comment.article = other
        with self.assertRaises(ValueError):
            comment.save()

    def test_user_cannot_be_reassigned(self):
        comment = Comment.objects.get(pk=self.comment.pk)
        comment.user = self.bob
        with self.assertRaises(ValueError):
            comment.save()

    def test_deferred_article_cannot_be_reassigned(self):
        other = _make_article(self.category, title="Other")
        comment = Comment.objects.only("body").get(pk=self.comment.pk)
        comment.article = other
        with self.assertRaises(ValueError):
            comment.save()
        self.assertEqual(Comment.objects.get(pk=self.comment.pk).article, self.article)

    def test_deferred_owners_allow_body_edit(self):
        comment = Comment.objects.only("body").get(pk=self.comment.pk)
        comment.body = "Edited"
        comment.save()
        saved = Comment.objects.get(pk=self.comment.pk)
        self.assertEqual(saved.body, "Edited")
        self.assertEqual(saved.article, self.article)
        self.assertEqual(saved.user, self.alice)


# =============================================================================
# Token and Permission Tests
# =============================================================================


class IntentTokenTest(TestCase):
    def test_token_round_trip(self):
        session = {}
        token = make_token(session, "delete1")
        self.assertTrue(check_token(session, "delete1", token))

    def test_token_is_bound_to_intent(self):
        session = {}
        token = make_token(session, "delete1")
        self.assertFalse(check_token(session, "delete2", token))
        self.assertFalse(check_token(session, "delete-comment1", token))

    def test_token_is_bound_to_session(self):
        token = make_token({}, "delete1")
        other_session = {}
        make_token(other_session, "delete1")
        self.assertFalse(check_token(other_session, "delete1", token))

    def test_missing_token_or_secret_is_invalid(self):
        session = {}
        self.assertFalse(check_token(session, "delete1", "anything"))
        make_token(session, "delete1")
        self.assertFalse(check_token(session, "delete1", None))
        self.assertFalse(check_token(session, "delete1", ""))

    def test_intent_names(self):
        self.assertEqual(article_delete_intent(7), "delete7")
        self.assertEqual(comment_delete_intent(7), "delete-comment7")


class PermissionTest(ArticleTestCase):
    def setUp(self):
        super().setUp()
        self.comment = Comment.objects.create(
            article=_make_article(self.category), user=self.alice, body="Hi"
        )

    def test_is_admin(self):
        self.assertTrue(is_admin(self.admin))
        self.assertFalse(is_admin(self.alice))
        self.assertFalse(is_admin(AnonymousUser()))
        self.assertFalse(is_admin(None))

    def test_superuser_is_admin(self):
        root = User.objects.create_superuser("root", password="pw")
        self.assertTrue(is_admin(root))

    def test_comment_author_or_admin_may_delete(self):
        self.assertTrue(can_delete_comment(self.alice, self.comment))
        self.assertTrue(can_delete_comment(self.admin, self.comment))
        self.assertFalse(can_delete_comment(self.bob, self.comment))
        self.assertFalse(can_delete_comment(AnonymousUser(), self.comment))

    def test_deny_unless_raises(self):
        deny_unless(True)
        with self.assertRaises(PermissionDenied):
            deny_unless(False, "nope")


# =============================================================================
# List View Tests
# =============================================================================


class ArticleIndexViewTest(ArticleTestCase):
    def setUp(self):
        super().setUp()
        self.old = _make_article(
            self.category, title="Old news", published_on=datetime.date(2020, 1, 1)
        )
        self.new = _make_article(
            self.category, title="Fresh news", published_on=datetime.date(2024, 1, 1)
        )
        self.other = _make_article(
            self.category, title="Weather", content="Rain", published_on=datetime.date(2022, 1, 1)
        )

    def test_lists_all_articles_newest_first(self):
        response = self.client.get(reverse("articles:index"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(list(response.context["articles"]), [self.new, self.other, self.old])
        self.assertEqual(response.context["query"], "")

    @override_settings(ARTICLES_SORT_UNFILTERED=False)
    def test_unsorted_list_keeps_insertion_order(self):
        response = self.client.get(reverse("articles:index"))
        self.assertEqual(list(response.context["articles"]), [self.old, self.new, self.other])

    def test_search_filters_and_echoes_query(self):
        response = self.client.get(reverse("articles:index"), {"q": "news"})
        self.assertEqual(list(response.context["articles"]), [self.new, self.old])
        self.assertEqual(response.context["query"], "news")
        self.assertContains(response, 'value="news"')

    def test_search_without_match(self):
        response = self.client.get(reverse("articles:index"), {"q": "nothing here"})
        self.assertEqual(list(response.context["articles"]), [])

    def test_post_not_allowed(self):
        response = self.client.post(reverse("articles:index"))
        self.assertEqual(response.status_code, 405)


# =============================================================================
# Create / Edit View Tests
# =============================================================================


class ArticleCreateViewTest(ArticleTestCase):
    def form_data(self, **overrides):
        data = {
            "title": "Hello",
            "content": "World",
            "category": self.category.pk,
            "author": "Alice",
            "published_on": "2024-01-01",
        }
        data.update(overrides)
        return data

    def test_admin_gets_empty_form(self):
        self.client.force_login(self.admin)
        response = self.client.get(reverse("articles:new"))
        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.context["form"].is_bound)

    def test_admin_creates_article_and_finds_it(self):
        _make_article(self.category, title="Older", published_on=datetime.date(2023, 1, 1))
        self.client.force_login(self.admin)

        response = self.client.post(reverse("articles:new"), self.form_data())

        self.assertRedirects(response, reverse("articles:index"), status_code=303)
        article = Article.objects.get(title="Hello")
        self.assertEqual(article.content, "World")
        self.assertEqual(article.author, "Alice")
        self.assertEqual(article.category, self.category)
        self.assertEqual(article.published_on, datetime.date(2024, 1, 1))

        listing = self.client.get(reverse("articles:index"))
        self.assertEqual(listing.context["articles"][0], article)

        found = self.client.get(reverse("articles:index"), {"q": "Hello"})
        self.assertIn(article, found.context["articles"])

    def test_invalid_form_is_rerendered(self):
        self.client.force_login(self.admin)
        response = self.client.post(
            reverse("articles:new"),
            self.form_data(title="", published_on="not a date", category=999),
        )
        self.assertEqual(response.status_code, 200)
        form = response.context["form"]
        self.assertIn("title", form.errors)
        self.assertIn("published_on", form.errors)
        self.assertIn("category", form.errors)
        self.assertFalse(Article.objects.exists())

    def test_regular_user_is_denied(self):
        self.client.force_login(self.alice)
        response = self.client.post(reverse("articles:new"), self.form_data())
        self.assertEqual(response.status_code, 403)
        self.assertFalse(Article.objects.exists())

    def test_anonymous_is_denied(self):
        response = self.client.get(reverse("articles:new"))
        self.assertEqual(response.status_code, 403)


class ArticleEditViewTest(ArticleTestCase):
    def setUp(self):
        super().setUp()
        self.article = _make_article(self.category, title="Draft")
        self.data = {
            "title": "Final",
            "content": "Updated",
            "category": self.category.pk,
            "author": "Bob",
            "published_on": "2024-02-02",
        }

    def test_admin_updates_article(self):
        self.client.force_login(self.admin)
        response = self.client.post(reverse("articles:edit", args=[self.article.pk]), self.data)

        self.assertRedirects(response, reverse("articles:index"), status_code=303)
        self.article.refresh_from_db()
        self.assertEqual(self.article.title, "Final")
        self.assertEqual(self.article.published_on, datetime.date(2024, 2, 2))
        self.assertEqual(Article.objects.count(), 1)

    def test_admin_gets_prefilled_form(self):
        self.client.force_login(self.admin)
        response = self.client.get(reverse("articles:edit", args=[self.article.pk]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.context["form"].instance, self.article)

    def test_invalid_edit_does_not_persist(self):
        self.client.force_login(self.admin)
        self.data["content"] = ""
        response = self.client.post(reverse("articles:edit", args=[self.article.pk]), self.data)
        self.assertEqual(response.status_code, 200)
        self.assertIn("content", response.context["form"].errors)
        self.article.refresh_from_db()
        self.assertEqual(self.article.title, "Draft")

    def test_regular_user_is_denied(self):
        self.client.force_login(self.alice)
        response = self.client.post(reverse("articles:edit", args=[self.article.pk]), self.data)
        self.assertEqual(response.status_code, 403)
        self.article.refresh_from_db()
        self.assertEqual(self.article.title, "Draft")

    def test_missing_article(self):
        self.client.force_login(self.admin)
        response = self.client.get(reverse("articles:edit", args=[self.article.pk + 100]))
        self.assertEqual(response.status_code, 404)


# =============================================================================
# Delete View Tests
# =============================================================================


class ArticleDeleteViewTest(ArticleTestCase):
    def setUp(self):
        super().setUp()
        self.article = _make_article(self.category)
        Comment.objects.create(article=self.article, user=self.alice, body="Nice")
        self.url = reverse("articles:delete", args=[self.article.pk])

    def test_admin_deletes_with_valid_token(self):
        self.client.force_login(self.admin)
        token = self.token_for(article_delete_intent(self.article.pk))

        response = self.client.post(self.url, {"_token": token})

        self.assertRedirects(
            response, reverse("articles:index"), status_code=303, fetch_redirect_response=False
        )
        self.assertFalse(Article.objects.filter(pk=self.article.pk).exists())
        self.assertFalse(Comment.objects.exists())
        notices = self.messages_of(response)
        self.assertIn(("info", f"Deleting article {self.article.pk}."), notices)
        self.assertIn(("success", "The article was deleted successfully."), notices)

    def test_missing_token_keeps_article(self):
        self.client.force_login(self.admin)
        response = self.client.post(self.url)

        self.assertEqual(response.status_code, 303)
        self.assertTrue(Article.objects.filter(pk=self.article.pk).exists())
        self.assertEqual(self.messages_of(response), [("error", "Invalid CSRF token.")])

    def test_token_for_another_article_keeps_article(self):
        other = _make_article(self.category, title="Other")
        self.client.force_login(self.admin)
        token = self.token_for(article_delete_intent(other.pk))

        response = self.client.post(self.url, {"_token": token})

        self.assertTrue(Article.objects.filter(pk=self.article.pk).exists())
        self.assertTrue(Article.objects.filter(pk=other.pk).exists())
        self.assertEqual(self.messages_of(response), [("error", "Invalid CSRF token.")])

    def test_regular_user_is_denied(self):
        self.client.force_login(self.alice)
        token = self.token_for(article_delete_intent(self.article.pk))

        response = self.client.post(self.url, {"_token": token})

        self.assertEqual(response.status_code, 403)
        self.assertTrue(Article.objects.filter(pk=self.article.pk).exists())

    def test_persistence_failure_becomes_notice(self):
        self.client.force_login(self.admin)
        token = self.token_for(article_delete_intent(self.article.pk))

        with patch.object(Article, "delete", side_effect=DatabaseError("disk full")):
            response = self.client.post(self.url, {"_token": token})

        self.assertEqual(response.status_code, 303)
        self.assertTrue(Article.objects.filter(pk=self.article.pk).exists())
        self.assertIn(
            ("error", "Error while deleting the article: disk full"),
            self.messages_of(response),
        )

    def test_database_error_mid_delete_rolls_back_comments(self):
        self.client.force_login(self.admin)
        token = self.token_for(article_delete_intent(self.article.pk))
        real_delete = QuerySet.delete

        def delete_then_fail(queryset):
            result = real_delete(queryset)
            with connection.cursor() as cursor:
                cursor.execute("SELECT * FROM no_such_table")
            return result

        with patch.object(QuerySet, "delete", delete_then_fail):
            response = self.client.post(self.url, {"_token": token})

        self.assertEqual(response.status_code, 303)
        self.assertTrue(Article.objects.filter(pk=self.article.pk).exists())
        self.assertEqual(Comment.objects.filter(article=self.article).count(), 1)
        notices = self.messages_of(response)
        self.assertEqual(notices[0], ("info", f"Deleting article {self.article.pk}."))
        self.assertEqual(notices[1][0], "error")
        self.assertTrue(notices[1][1].startswith("Error while deleting the article:"))

    def test_get_not_allowed(self):
        self.client.force_login(self.admin)
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, 405)

    def test_edit_page_renders_working_token(self):
        self.client.force_login(self.admin)
        page = self.client.get(reverse("articles:edit", args=[self.article.pk]))
        session = self.client.session
        token = make_token(session, article_delete_intent(self.article.pk))
        self.assertContains(page, f'value="{token}"')

        self.client.post(self.url, {"_token": token})
        self.assertFalse(Article.objects.filter(pk=self.article.pk).exists())


# =============================================================================
# Show / Comment Submit Tests
# =============================================================================


class ArticleShowViewTest(ArticleTestCase):
    def setUp(self):
        super().setUp()
        self.article = _make_article(self.category, title="Readable", content="Body text")
        self.url = reverse("articles:show", args=[self.article.pk])

    def test_anonymous_sees_article_without_form(self):
        Comment.objects.create(article=self.article, user=self.alice, body="First!")
        response = self.client.get(self.url)

        self.assertEqual(response.status_code, 200)
        self.assertContains(response, "Readable")
        self.assertContains(response, "First!")
        self.assertIsNone(response.context["comment_form"])

    def test_anonymous_post_creates_nothing(self):
        response = self.client.post(self.url, {"body": "spam"})
        self.assertEqual(response.status_code, 200)
        self.assertFalse(Comment.objects.exists())

    def test_missing_article(self):
        response = self.client.get(reverse("articles:show", args=[self.article.pk + 100]))
        self.assertEqual(response.status_code, 404)

    def test_user_posts_comment(self):
        self.client.force_login(self.alice)
        response = self.client.post(self.url, {"body": "Great read"})

        self.assertRedirects(response, self.url)
        comment = Comment.objects.get()
        self.assertEqual(comment.body, "Great read")
        self.assertEqual(comment.article, self.article)
        self.assertEqual(comment.user, self.alice)
        self.assertIsNotNone(comment.created_at)

    def test_form_cannot_override_associations(self):
        other = _make_article(self.category, title="Other")
        self.client.force_login(self.alice)
        self.client.post(
            self.url, {"body": "Mine", "article": other.pk, "user": self.bob.pk}
        )
        comment = Comment.objects.get()
        self.assertEqual(comment.article, self.article)
        self.assertEqual(comment.user, self.alice)

    def test_empty_comment_is_rejected(self):
        self.client.force_login(self.alice)
        response = self.client.post(self.url, {"body": ""})
        self.assertEqual(response.status_code, 200)
        self.assertIn("body", response.context["comment_form"].errors)
        self.assertFalse(Comment.objects.exists())

    def test_only_deletable_comments_get_a_delete_form(self):
        own = Comment.objects.create(article=self.article, user=self.alice, body="mine")
        theirs = Comment.objects.create(article=self.article, user=self.bob, body="theirs")
        self.client.force_login(self.alice)

        response = self.client.get(self.url)

        self.assertEqual(response.context["comments"], [(own, True), (theirs, False)])
        self.assertContains(
            response, reverse("articles:comment_delete", args=[self.article.pk, own.pk])
        )
        self.assertNotContains(
            response, reverse("articles:comment_delete", args=[self.article.pk, theirs.pk])
        )


# =============================================================================
# Comment Delete Tests
# =============================================================================


class CommentDeleteViewTest(ArticleTestCase):
    def setUp(self):
        super().setUp()
        self.article = _make_article(self.category)
        self.comment = Comment.objects.create(article=self.article, user=self.alice, body="Hi")
        self.url = reverse("articles:comment_delete", args=[self.article.pk, self.comment.pk])
        self.show_url = reverse("articles:show", args=[self.article.pk])

    def test_author_deletes_own_comment(self):
        self.client.force_login(self.alice)
        token = self.token_for(comment_delete_intent(self.comment.pk))

        response = self.client.post(self.url, {"_token": token})

        self.assertRedirects(response, self.show_url)
        self.assertFalse(Comment.objects.exists())

    def test_admin_deletes_any_comment(self):
        self.client.force_login(self.admin)
        token = self.token_for(comment_delete_intent(self.comment.pk))

        self.client.post(self.url, {"_token": token})

        self.assertFalse(Comment.objects.exists())
        self.assertTrue(Article.objects.filter(pk=self.article.pk).exists())

    def test_other_user_is_denied(self):
        self.client.force_login(self.bob)
        token = self.token_for(comment_delete_intent(self.comment.pk))

        response = self.client.post(self.url, {"_token": token})

        self.assertEqual(response.status_code, 403)
        self.assertTrue(Comment.objects.filter(pk=self.comment.pk).exists())

    def test_anonymous_is_denied(self):
        response = self.client.post(self.url, {"_token": "whatever"})
        self.assertEqual(response.status_code, 403)
        self.assertTrue(Comment.objects.filter(pk=self.comment.pk).exists())

    def test_comment_from_another_article_is_not_found(self):
        other = _make_article(self.category, title="Other")
        self.client.force_login(self.admin)
        token = self.token_for(comment_delete_intent(self.comment.pk))

        response = self.client.post(
            reverse("articles:comment_delete", args=[other.pk, self.comment.pk]),
            {"_token": token},
        )

        self.assertEqual(response.status_code, 404)
        self.assertTrue(Comment.objects.filter(pk=self.comment.pk).exists())

    def test_missing_comment_is_not_found(self):
        self.client.force_login(self.admin)
        response = self.client.post(
            reverse("articles:comment_delete", args=[self.article.pk, self.comment.pk + 100])
        )
        self.assertEqual(response.status_code, 404)

    def test_invalid_token_is_silently_ignored(self):
        self.client.force_login(self.alice)
        token = self.token_for(article_delete_intent(self.article.pk))

        response = self.client.post(self.url, {"_token": token})

        self.assertRedirects(response, self.show_url)
        self.assertTrue(Comment.objects.filter(pk=self.comment.pk).exists())
        self.assertEqual(self.messages_of(response), [])


# =============================================================================
# Project Template Tests
# =============================================================================


class ProjectTemplatesTest(TestCase):
    """Shared pages live inside the blogsite package so they install with it."""

    def test_shared_templates_load_from_config_package(self):
        package_templates = Path(blogsite.__file__).resolve().parent / "templates"
        for name in ("base.html", "403.html", "404.html", "registration/login.html"):
            origin = Path(get_template(name).origin.name).resolve()
            self.assertEqual(origin, package_templates / name)

    def test_login_page_renders(self):
        response = self.client.get(reverse("login"))
        self.assertEqual(response.status_code, 200)
        self.assertTemplateUsed(response, "base.html")
