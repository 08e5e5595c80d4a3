from rest_framework import serializers
from .models import User


class UserProfileSerializer(serializers.ModelSerializer):
    is_admin = serializers.BooleanField(read_only=True)

    class Meta:
        model = User
        fields = ['id', 'email', 'name', 'phone', 'role', 'is_admin']
        read_only_fields = ['id', 'email', 'role']
