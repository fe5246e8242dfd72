"""
URL routing for accounts app.
"""
from django.urls import path
from django.views.decorators.csrf import csrf_exempt


# Lazy view imports to avoid AppRegistryNotReady
@csrf_exempt
def login_view(request):
    from .auth import login
    return login(request)


@csrf_exempt
def register_view(request):
    from .auth import register
    return register(request)


@csrf_exempt
def logout_view(request):
    from .auth import logout
    return logout(request)


def me_view(request):
    from .auth import me
    return me(request)


urlpatterns = [
    path('login/', login_view, name='login'),
    path('register/', register_view, name='register'),
    path('logout/', logout_view, name='logout'),
    path('me/', me_view, name='me'),
]
