"""
Institution scoping helpers for the café API.

The permission classes themselves live in apps.accounts.permissions;
these helpers keep children and products inside the operator's
institution.
"""
from .exceptions import CustomerNotInInstitutionError, ProductNotInInstitutionError


def get_customer_in_institution(session, customer_id):
    """
    Load a customer for the session's institution.

    Raises:
        CustomerNotInInstitutionError: If missing or from another institution
    """
    customer = session.data_source.get_child_profile(str(customer_id))
    if customer is None or customer.institution_id != session.institution_id:
        raise CustomerNotInInstitutionError()
    return customer


def get_product_in_institution(session, product_id):
    """
    Load a product for the session's institution.

    Raises:
        ProductNotInInstitutionError: If missing or from another institution
    """
    product = session.data_source.get_product(str(product_id))
    if product is None or product.institution_id != session.institution_id:
        raise ProductNotInInstitutionError()
    return product
