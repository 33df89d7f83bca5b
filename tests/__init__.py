"""
websession tests

Test Organization:
- test_site_config.py: settings table access and typed auth configuration
- test_user_store.py: user lookups, auth hooks and last-visit bookkeeping
- test_auth_methods.py: database auth method, password policy, account
  lifecycle, method registry
- test_ssh_method.py: SSH-delegated auth with paramiko mocked out
- test_ldap_method.py: LDAP and LDAPS auth with ldap3 mocked out
- test_auth_service.py: multi-method login validation, account lifecycle and
  unique ids
- test_session_handler.py: session lifecycle, autologin keys, expiry, GC
- test_auth_router.py: FastAPI login/logout/session endpoints
- test_cli.py: management command helpers
- test_logging_setup.py: logging configuration

Running Tests:
    # Run all tests
    pytest tests/

    # Run one module
    pytest tests/test_session_handler.py
"""
