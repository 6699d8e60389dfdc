from django.contrib import admin

from .models import Article, Category, Comment


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ("name",)
    search_fields = ("name",)


class CommentInline(admin.TabularInline):
    model = Comment
    extra = 0
    fields = ("user", "body", "created_at")
    readonly_fields = ("user", "created_at")

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Article)
class ArticleAdmin(admin.ModelAdmin):
    list_display = ("id", "title", "category", "author", "published_on")
    list_filter = ("category", "published_on")
    search_fields = ("title", "content", "author")
    autocomplete_fields = ("category",)
    date_hierarchy = "published_on"
    ordering = ("-published_on",)
    inlines = [CommentInline]


@admin.register(Comment)
class CommentAdmin(admin.ModelAdmin):
    list_display = ("id", "article", "user", "created_at")
    list_filter = ("created_at",)
    search_fields = ("body", "user__username", "article__title")
    readonly_fields = ("article", "user", "created_at")

    def has_add_permission(self, request):
        # Comments are only written from the article page.
        return False
