"""
Sample service that reads its database connection string from Azure Key Vault.
"""
