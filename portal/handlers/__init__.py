"""Route handlers. Each takes the Request and returns a Response; guards run before them."""
