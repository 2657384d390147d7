"""
Provisioning services: address allocation, approval and commit pipeline
"""
