from django.urls import path

from . import views

app_name = "articles"

urlpatterns = [
    path("article", views.article_index, name="index"),
    path("article/new", views.article_new, name="new"),
    path("article/<int:pk>", views.article_show, name="show"),
    path("article/<int:pk>/edit", views.article_edit, name="edit"),
    path("article/<int:pk>/delete", views.article_delete, name="delete"),
    path(
        "article/<int:pk>/comment/<int:comment_pk>/delete",
        views.comment_delete,
        name="comment_delete",
    ),
]
