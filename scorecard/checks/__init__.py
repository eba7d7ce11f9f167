"""Shell, Dockerfile and workflow analysis for unpinned dependencies."""