from rest_framework import serializers

from modules.accounts.models import Profile


class ProfileSerializer(serializers.ModelSerializer):
    class Meta:
        model = Profile
        fields = ["id", "full_name", "email", "phone", "role", "created_at"]
        read_only_fields = fields
