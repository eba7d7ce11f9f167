"""GitHub implementation of the repository client."""