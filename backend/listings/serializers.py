from rest_framework import serializers

from .models import Listing


class ListingSerializer(serializers.ModelSerializer):
    """Serializer for Listing that enforces business rules and permissions."""

    owner = serializers.PrimaryKeyRelatedField(read_only=True)
    owner_username = serializers.ReadOnlyField(source="owner.username")

    class Meta:
        model = Listing
        fields = [
            "id",
            "owner",
            "owner_username",
            "title",
            "description",
            "address",
            "city",
            "price_per_hour",
            "available_from",
            "available_to",
            "images",
            "is_active",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["owner", "created_at", "updated_at"]

    def create(self, validated_data):
        """Create a listing for the authenticated host."""
        request = self.context.get("request")
        user = getattr(request, "user", None)
        if not user or not user.is_authenticated:
            raise serializers.ValidationError({"detail": "Authentication required."})
        if not user.is_host():
            raise serializers.ValidationError({"detail": "Only hosts can create listings."})
        validated_data["owner"] = user
        return super().create(validated_data)

    def update(self, instance, validated_data):
        """Allow updates only when performed by the owner."""
        request = self.context.get("request")
        user = getattr(request, "user", None)
        if not user or instance.owner_id != getattr(user, "id", None):
            raise serializers.ValidationError(
                {"detail": "You do not have permission to modify this listing."}
            )
        validated_data.pop("owner", None)
        return super().update(instance, validated_data)

    def validate_title(self, value):
        if not value or len(value.strip()) < 3:
            raise serializers.ValidationError("Title must be at least 3 characters.")
        return value.strip()

    def validate_price_per_hour(self, value):
        if value is None or value < 0:
            raise serializers.ValidationError("Price per hour cannot be negative.")
        return value

    def validate_images(self, value):
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise serializers.ValidationError("Images must be a list of strings.")
        return value

    def validate(self, attrs):
        available_from = attrs.get(
            "available_from", getattr(self.instance, "available_from", None)
        )
        available_to = attrs.get("available_to", getattr(self.instance, "available_to", None))
        if available_from and available_to and available_from >= available_to:
            raise serializers.ValidationError(
                {"available_to": ["Availability must end after it starts."]}
            )
        return attrs
