from django import forms

from .models import Article, Comment


class ArticleForm(forms.ModelForm):
    class Meta:
        model = Article
        fields = ["title", "content", "category", "author", "published_on"]
        labels = {
            "content": "Content",
        }
        widgets = {
            "content": forms.Textarea(attrs={"rows": 12}),
            "published_on": forms.DateInput(attrs={"type": "date"}, format="%Y-%m-%d"),
        }


class CommentForm(forms.ModelForm):
    """Only the body is bound from the request; article and user come from the view."""

    class Meta:
        model = Comment
        fields = ["body"]
        labels = {"body": "Comment"}
        widgets = {"body": forms.Textarea(attrs={"rows": 4})}
