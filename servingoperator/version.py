"""Release version applied to the KnativeServing resource."""

VERSION = "0.10.0"