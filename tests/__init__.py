"""
Terraform Resource Test Suite

- Unit tests for models, storage drivers and the terraform CLI wrapper
- Lifecycle tests for apply/destroy against a fake terraform client
- Step tests for the check, in and out runners and the CLI
"""
