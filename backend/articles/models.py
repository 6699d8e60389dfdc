from django.conf import settings
from django.db import models, transaction
from django.db.models import Q


class Category(models.Model):
    """Categorization for articles."""

    name = models.CharField(max_length=255, unique=True)

    class Meta:
        verbose_name = "Category"
        verbose_name_plural = "Categories"
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name


class ArticleQuerySet(models.QuerySet):
    def newest_first(self):
        return self.order_by("-published_on", "-pk")

    def search(self, query: str):
        """Return articles whose title or content contains ``query``."""

        return self.filter(
            Q(title__icontains=query) | Q(content__icontains=query)
        ).newest_first()


class Article(models.Model):
    """Article written by an administrator, filed under a category."""

    category = models.ForeignKey(
        Category,
        related_name="articles",
        on_delete=models.PROTECT,
    )
    title = models.CharField(max_length=255)
    content = models.TextField()
    author = models.CharField(max_length=255)
    published_on = models.DateField("publication date")

    objects = ArticleQuerySet.as_manager()

    def __str__(self) -> str:  # pragma: no cover - simple representation
        return self.title

    def delete(self, *args, **kwargs):
        # Comments go in the same transaction as the article itself.
        with transaction.atomic():
            self.comments.all().delete()
            return super().delete(*args, **kwargs)


class Comment(models.Model):
    """A user's comment on an article.

    The article and the user are fixed when the comment is constructed and
    cannot be reassigned afterwards.
    """

    article = models.ForeignKey(
        Article,
        related_name="comments",
        on_delete=models.CASCADE,
        editable=False,
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="article_comments",
        on_delete=models.CASCADE,
        editable=False,
    )
    body = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]

    def __str__(self) -> str:  # pragma: no cover - simple representation
        return f"Comment by {self.user} on {self.article}"

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._loaded_owners = {
            name: value
            for name, value in zip(field_names, values)
            if name in ("article_id", "user_id")
        }
        return instance

    def save(self, *args, **kwargs):
        loaded = getattr(self, "_loaded_owners", None)
        if loaded is not None:
            for name in ("article_id", "user_id"):
                if name not in self.__dict__:
                    # Still deferred, so it will not be written.
                    continue
                if name in loaded:
                    original = loaded[name]
                else:
                    original = (
                        type(self)._base_manager.filter(pk=self.pk)
                        .values_list(name, flat=True)
                        .first()
                    )
                if self.__dict__[name] != original:
                    raise ValueError("A comment's article and user cannot be changed.")
        super().save(*args, **kwargs)
        self._loaded_owners = {"article_id": self.article_id, "user_id": self.user_id}
