"""Remote file system access to the containers of a Kubernetes cluster over exec."""
