__version__ = "0.1.0"

CLIENT_VERSION = f"k1s0-prefab-python-{__version__}"
CLIENT_VERSION_HEADER = "X-PrefabCloud-Client-Version"
