from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated, AllowAny
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer, TokenRefreshSerializer
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError
from django.core.exceptions import ObjectDoesNotExist
from .models import User, ShopSettings, AuditLog
from .serializers import UserSerializer, UserCreateSerializer, ShopSettingsSerializer, AuditLogSerializer


class CustomTokenObtainPairSerializer(TokenObtainPairSerializer):
    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token['username'] = user.username
        return token


class CustomTokenObtainPairView(TokenObtainPairView):
    serializer_class = CustomTokenObtainPairSerializer


class CustomTokenRefreshSerializer(TokenRefreshSerializer):
    """Token refresh that answers 401 instead of 500 for deleted users"""
    def validate(self, attrs):
        try:
            return super().validate(attrs)
        except (InvalidToken, TokenError):
            raise InvalidToken('Token is invalid or expired.')
        except ObjectDoesNotExist:
            raise InvalidToken('Token is invalid. User no longer exists.')


class CustomTokenRefreshView(TokenRefreshView):
    serializer_class = CustomTokenRefreshSerializer


@api_view(['POST'])
@permission_classes([AllowAny])
def register(request):
    """User registration endpoint"""
    serializer = UserCreateSerializer(data=request.data)
    if serializer.is_valid():
        user = serializer.save()
        token = CustomTokenObtainPairSerializer.get_token(user)
        return Response({
            'user': UserSerializer(user).data,
            'access': str(token.access_token),
            'refresh': str(token),
        }, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def user_me(request):
    """Current user with their shop profile"""
    user_data = UserSerializer(request.user).data
    shop = ShopSettings.objects.filter(user=request.user).first()
    user_data['shop'] = ShopSettingsSerializer(shop).data if shop else None
    return Response(user_data)


@api_view(['GET', 'PUT'])
@permission_classes([IsAuthenticated])
def shop_settings(request):
    """Read or upsert the caller's shop settings"""
    settings_obj = ShopSettings.objects.filter(user=request.user).first()

    if request.method == 'GET':
        if not settings_obj:
            return Response({'detail': 'Shop settings not configured'}, status=status.HTTP_404_NOT_FOUND)
        return Response(ShopSettingsSerializer(settings_obj).data)

    serializer = ShopSettingsSerializer(settings_obj, data=request.data)
    if serializer.is_valid():
        created = settings_obj is None
        settings_obj = serializer.save(user=request.user)
        return Response(
            ShopSettingsSerializer(settings_obj).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK
        )
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def audit_log_list(request):
    """List the caller's audit logs with filtering"""
    queryset = AuditLog.objects.filter(user=request.user)

    action_filter = request.query_params.get('action', None)
    if action_filter:
        queryset = queryset.filter(action=action_filter)

    model_filter = request.query_params.get('model', None)
    if model_filter:
        queryset = queryset.filter(model_name=model_filter)

    date_from = request.query_params.get('date_from', None)
    date_to = request.query_params.get('date_to', None)
    if date_from:
        queryset = queryset.filter(created_at__date__gte=date_from)
    if date_to:
        queryset = queryset.filter(created_at__date__lte=date_to)

    serializer = AuditLogSerializer(queryset.order_by('-created_at')[:500], many=True)
    return Response(serializer.data)
