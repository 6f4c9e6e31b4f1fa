import logging
from decimal import Decimal, InvalidOperation

from rest_framework import permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import AuthenticationFailed
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from .models import Listing
from .serializers import ListingSerializer
from .services import search_listings

logger = logging.getLogger(__name__)

PUBLIC_ACTIONS = {"list", "retrieve"}


def _parse_decimal(raw):
    if raw in (None, ""):
        return None
    try:
        return Decimal(str(raw))
    except (InvalidOperation, TypeError, ValueError):
        return None


class ListingPagination(PageNumberPagination):
    page_size = 20
    page_size_query_param = "page_size"
    max_page_size = 100


class IsOwnerOrReadOnly(permissions.BasePermission):
    def has_object_permission(self, request, view, obj):
        if request.method in permissions.SAFE_METHODS:
            return True
        return getattr(obj, "owner_id", None) == getattr(request.user, "id", None)


class IsHostForCreate(permissions.BasePermission):
    def has_permission(self, request, view):
        if request.method == "POST":
            user = request.user
            return bool(user and user.is_authenticated and user.is_host())
        return True


class ListingViewSet(viewsets.ModelViewSet):
    serializer_class = ListingSerializer
    pagination_class = ListingPagination
    permission_classes = [
        permissions.IsAuthenticatedOrReadOnly,
        IsOwnerOrReadOnly,
        IsHostForCreate,
    ]

    def get_permissions(self):
        if getattr(self, "action", None) in PUBLIC_ACTIONS:
            return [permissions.AllowAny()]
        return [permission() for permission in self.permission_classes]

    def perform_authentication(self, request):
        """Downgrade to anonymous user when public actions receive invalid tokens."""
        try:
            return super().perform_authentication(request)
        except AuthenticationFailed:
            if getattr(self, "action", None) in PUBLIC_ACTIONS:
                request._not_authenticated()
                return
            raise

    def get_queryset(self):
        base_qs = Listing.objects.select_related("owner")
        if getattr(self, "action", None) not in PUBLIC_ACTIONS:
            return base_qs.order_by("-created_at")

        params = self.request.query_params
        owner_id_raw = params.get("owner_id")
        try:
            owner_id = int(owner_id_raw) if owner_id_raw not in (None, "") else None
        except (TypeError, ValueError):
            owner_id = None

        return search_listings(
            qs=base_qs,
            q=params.get("q") or None,
            price_min=_parse_decimal(params.get("price_min")),
            price_max=_parse_decimal(params.get("price_max")),
            city=params.get("city") or None,
            owner_id=owner_id,
        )

    def perform_create(self, serializer):
        listing = serializer.save()
        logger.info(
            "listings: created",
            extra={"listing_id": listing.id, "owner_id": listing.owner_id},
        )

    def destroy(self, request, *args, **kwargs):
        """Deactivate instead of deleting so past bookings keep their listing."""
        instance = self.get_object()
        if instance.is_active:
            instance.is_active = False
            instance.save(update_fields=["is_active", "updated_at"])
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(
        detail=False,
        methods=["get"],
        url_path="mine",
        permission_classes=[IsAuthenticated],
    )
    def mine(self, request):
        """Return the authenticated host's listings using existing pagination."""
        qs = Listing.objects.filter(owner=request.user).order_by("-created_at")
        page = self.paginate_queryset(qs)
        if page is not None:
            serializer = self.get_serializer(page, many=True)
            return self.get_paginated_response(serializer.data)
        serializer = self.get_serializer(qs, many=True)
        return Response(serializer.data)
