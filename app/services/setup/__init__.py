"""Setup (provisioning) services.

This package contains orchestration helpers that *provision* or *verify* the external
infrastructure the app depends on: the hosted Supabase project, its schema, secrets
and Edge Functions.
"""
