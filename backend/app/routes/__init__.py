"""
Ariya Backend — API Routes Package
====================================

Route Inventory:
    - auth.py:        POST /api/v1/auth/{login,register,refresh-token,logout,
                                         forgot-password,reset-password,
                                         verify-email,social-login}
                      GET  /api/v1/auth/verify-email?email=   (resend link)
    - profile.py:     GET  /api/v1/profile
    - moderation.py:  POST /api/v1/moderation/report
                      GET  /api/v1/moderation/reports         (admin)
                      PUT  /api/v1/moderation/reports/{id}    (admin)
                      POST /api/v1/moderation/action-check
    - health.py:      GET  /health

Routes stay thin: the pipeline stages are dependencies (app/dependencies.py),
the business rules live in services, and every response goes through
app/responses.py.
"""
