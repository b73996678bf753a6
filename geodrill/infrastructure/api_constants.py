"""
API endpoint constants and configuration.

This module contains all geography API endpoint paths and related constants.
Centralizing these values makes it easy to swap out endpoints or update API versions.
"""


# geo.api.gouv.fr Endpoints
class GeoAPIEndpoints:
    """Geography API endpoint paths."""

    REGION_DEPARTMENTS = "/regions/{region_code}/departements"
    DEPARTMENT_COMMUNES = "/departements/{department_code}/communes"
    COMMUNES = "/communes"

    @classmethod
    def get_region_departments(cls, region_code: str) -> str:
        """
        Get the department membership endpoint for a region.

        Args:
            region_code: Region code

        Returns:
            Formatted endpoint path
        """
        return cls.REGION_DEPARTMENTS.format(region_code=region_code)

    @classmethod
    def get_department_communes(cls, department_code: str) -> str:
        """
        Get the communes endpoint for a department.

        Args:
            department_code: Department code

        Returns:
            Formatted endpoint path
        """
        return cls.DEPARTMENT_COMMUNES.format(department_code=department_code)


# API Configuration Constants
class GeoAPIConstants:
    """General geography API constants."""

    # Commune contours as a FeatureCollection
    COMMUNE_GEOMETRY_PARAMS = {"format": "geojson", "geometry": "contour"}

    # Fields requested by the commune name lookup
    COMMUNE_SEARCH_FIELDS = "nom,code,codeDepartement,codeRegion"

    # Overseas departments use a 3-digit code starting with this prefix
    OVERSEAS_PREFIX = "97"
