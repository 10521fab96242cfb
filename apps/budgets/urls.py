from django.urls import path
from . import views

app_name = 'budgets'

urlpatterns = [
    path('<slug:kind>/create/', views.create_node, name='create'),
    path('<slug:kind>/<int:pk>/update/', views.update_node, name='update'),
    path('<slug:kind>/<int:pk>/trash/', views.trash_node, name='trash'),
    path('<slug:kind>/<int:pk>/restore/', views.restore_node, name='restore'),
    path('<slug:kind>/<int:pk>/purge/', views.purge_node, name='purge'),
    path('<slug:kind>/<int:pk>/recalculate/', views.recalculate_node, name='recalculate'),
    path('<slug:kind>/<int:pk>/toggle-auto/', views.toggle_auto_calculate, name='toggle_auto'),
    path('<slug:kind>/<int:pk>/toggle-pin/', views.toggle_pin, name='toggle_pin'),
    path('<slug:kind>/bulk/trash/', views.bulk_trash, name='bulk_trash'),
    path('<slug:kind>/bulk/restore/', views.bulk_restore, name='bulk_restore'),
    path('<slug:kind>/bulk/category/', views.bulk_update_category, name='bulk_category'),
    path('<slug:kind>/bulk/toggle-auto/', views.bulk_toggle_auto_calculate, name='bulk_toggle_auto'),
]
