"""Multi-tenant CRM API with role and tenant based access control."""
