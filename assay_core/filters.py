# assay_core/filters.py
import django_filters as df
from django.contrib.auth import get_user_model
from django.db.models import Q

from .labels import to_token
from .models import Report, Role, Sample, SampleStatus


def _token_filter(kind, field_name):
    def _filter(queryset, name, value):
        token = to_token(kind, value)
        if token is None:
            return queryset.none()
        return queryset.filter(**{field_name: token})

    return _filter


class SampleFilter(df.FilterSet):
    search = df.CharFilter(method="filter_search", max_length=100)
    mineral = df.CharFilter(method=_token_filter("mineral", "mineral"))
    site = df.CharFilter(field_name="site", lookup_expr="icontains", max_length=200)
    status = df.ChoiceFilter(choices=SampleStatus.choices)
    priority = df.NumberFilter(field_name="priority")
    client = df.NumberFilter(field_name="client_id")
    analyst = df.NumberFilter(field_name="analyst_id")
    date_from = df.IsoDateTimeFilter(field_name="received_at", lookup_expr="gte")
    date_to = df.IsoDateTimeFilter(field_name="received_at", lookup_expr="lte")
    ordering = df.OrderingFilter(
        fields=(
            "created_at",
            "updated_at",
            "received_at",
            "due_date",
            "code",
            "site",
            "mineral",
            "status",
            "priority",
        )
    )

    class Meta:
        model = Sample
        fields = ["search", "mineral", "site", "status", "priority", "client", "analyst"]

    def filter_search(self, queryset, name, value):
        value = (value or "").strip()
        if not value:
            return queryset
        return queryset.filter(
            Q(code__icontains=value)
            | Q(site__icontains=value)
            | Q(notes__icontains=value)
            | Q(client__profile__display_name__icontains=value)
            | Q(client__profile__company__icontains=value)
        )


class ReportFilter(df.FilterSet):
    search = df.CharFilter(method="filter_search", max_length=100)
    mineral = df.CharFilter(method=_token_filter("mineral", "sample__mineral"))
    site = df.CharFilter(field_name="sample__site", lookup_expr="icontains", max_length=200)
    certified = df.BooleanFilter(field_name="certified")
    date_from = df.IsoDateTimeFilter(field_name="issued_at", lookup_expr="gte")
    date_to = df.IsoDateTimeFilter(field_name="issued_at", lookup_expr="lte")
    ordering = df.OrderingFilter(
        fields=(
            "issued_at",
            "report_code",
            "grade",
            ("sample__mineral", "mineral"),
            ("sample__site", "site"),
        )
    )

    class Meta:
        model = Report
        fields = ["search", "mineral", "site", "certified"]

    def filter_search(self, queryset, name, value):
        value = (value or "").strip()
        if not value:
            return queryset
        return queryset.filter(
            Q(report_code__icontains=value)
            | Q(sample__code__icontains=value)
            | Q(sample__site__icontains=value)
        )


class UserFilter(df.FilterSet):
    search = df.CharFilter(method="filter_search", max_length=100)
    role = df.ChoiceFilter(field_name="profile__role", choices=Role.choices)
    is_active = df.BooleanFilter(field_name="is_active")

    class Meta:
        model = get_user_model()
        fields = ["search", "role", "is_active"]

    def filter_search(self, queryset, name, value):
        value = (value or "").strip()
        if not value:
            return queryset
        return queryset.filter(
            Q(email__icontains=value)
            | Q(profile__display_name__icontains=value)
            | Q(profile__company__icontains=value)
        )
