"""trackrelay core — consent gate, middleware chain, batch queue and tracker."""
