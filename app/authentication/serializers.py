from rest_framework import serializers

from authentication.models import User
from credits.serializers import CreditAccountSerializer


class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ["id", "email", "name", "email_verified", "date_joined"]
        read_only_fields = fields


class RegisterSerializer(serializers.Serializer):
    """
    Email and password sign-up.

    Saving creates the User; the post_save signal opens its free-tier
    credit account in the same transaction.
    """

    email = serializers.EmailField()
    name = serializers.CharField(required=False, allow_blank=True, max_length=150)
    password1 = serializers.CharField(write_only=True, min_length=8, style={"input_type": "password"})
    password2 = serializers.CharField(write_only=True, style={"input_type": "password"})

    def validate_email(self, value):
        email = value.strip().lower()
        if User.objects.filter(email__iexact=email).exists():
            raise serializers.ValidationError("A user with this email already exists.")
        return email

    def validate(self, attrs):
        if attrs["password1"] != attrs["password2"]:
            raise serializers.ValidationError({"password2": "Passwords do not match."})
        return attrs

    def create(self, validated_data):
        return User.objects.create_user(
            validated_data["email"],
            validated_data["password1"],
            name=validated_data.get("name", ""),
        )


class RegistrationResponseSerializer(serializers.Serializer):
    """Body of a successful sign-up: the user and its opened credit account."""

    user = UserSerializer()
    credit_account = CreditAccountSerializer()
