from django.urls import path
from . import views

app_name = 'purchases'

urlpatterns = [
    # Operator session
    # GET         /api/cafe/session/                  - Customer, cart, evaluation
    # POST/DELETE /api/cafe/session/customer/         - Select / clear customer
    # POST/DELETE /api/cafe/session/order/            - Add product / remove line
    # GET         /api/cafe/session/locks/            - Product lock pass
    # POST        /api/cafe/session/checkout/         - Complete purchase
    # POST        /api/cafe/session/undo-last-sale/   - Undo last sale (admin)
    path('session/', views.session_state, name='session'),
    path('session/customer/', views.session_customer, name='session-customer'),
    path('session/order/', views.session_order, name='session-order'),
    path('session/locks/', views.session_locks, name='session-locks'),
    path('session/checkout/', views.session_checkout, name='session-checkout'),
    path('session/undo-last-sale/', views.session_undo_last_sale, name='session-undo-last-sale'),

    # Limits and refills
    path('limits/check/', views.limits_check, name='limits-check'),
    path('children/<uuid:child_id>/limits/', views.child_limits, name='child-limits'),
    path('children/<uuid:child_id>/refill/<uuid:product_id>/', views.child_refill, name='child-refill'),

    # Evaluation and ledger
    path('evaluate/', views.evaluate, name='evaluate'),
    path('deposits/', views.deposits, name='deposits'),
    path('balance/', views.balance, name='balance'),
]
