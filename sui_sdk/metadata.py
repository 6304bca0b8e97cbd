import importlib.metadata as metadata

# constants
PACKAGE_NAME = "sui_sdk"


class Metadata:
    SUI_HEADER = "client-sdk-type"
    SUI_VERSION_HEADER = "client-sdk-version"

    @staticmethod
    def get_sui_header_val():
        return "python"

    @staticmethod
    def get_sui_version_header_val():
        version = metadata.version(PACKAGE_NAME)
        return f"sui-python-sdk/{version}"
