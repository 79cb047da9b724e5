"""
Ariya Backend — Services Layer
================================

Service Inventory:
    - RateLimiter:      fixed-window counters per (category, client)
    - CredentialStore:  JWT access/refresh token issue and verification
    - UserDirectory:    account lookup by id or email
    - AuthResolver:     bearer token → Principal + Session, role checks
    - AuthService:      login, registration, refresh, logout, reset,
                        verification and social login
    - ModerationService: user reports and the admin review queue
    - MailSender / SocialIdentityProvider: outbound collaborators

Services take their collaborators as constructor arguments so tests can swap
in fakes without touching the routes.
"""
