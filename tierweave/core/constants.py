ROOT_PACKAGE_NAME = "tierweave"
