"""
deploy-rehearsal — integration test package.

Purpose
- Test package marker; tests here drive real ``git`` against temporary repositories.

Functional requirements
- No network access; GitHub is replaced by in-memory pull-request sources.
"""
