SPEED_PREFIXES = [(1e18, 'E'), (1e15, 'P'), (1e12, 'T'), (1e9, 'G'), (1e6, 'M'),
                  (1e3, 'k')]


def format_speed(s):
    """Turn a hashes/second value into a string like ' 12.50 MH/s'."""
    if s is None:
        return '    -- H/s'
    for scale, prefix in SPEED_PREFIXES:
        if s >= scale:
            return '%6.2f %sH/s' % (s/scale, prefix)
    return '%6.2f  H/s' % s


def format_time(seconds):
    """Turn a duration into 'S s', 'M:SS', or 'H:MM:SS'."""
    seconds = int(round(seconds))
    h, rest = divmod(seconds, 3600)
    m, s = divmod(rest, 60)
    if h > 0:
        return '%d:%02d:%02d' % (h, m, s)
    elif m > 0:
        return '%1d:%02d' % (m, s)
    else:
        return '%2d s' % s


def format_balance(v, unit='mBTC'):
    """Turn a BTC amount into a string in the requested unit."""
    scale, places = {'BTC': (1.0, 8), 'mBTC': (1e3, 5)}[unit]
    return '%.*f %s' % (places, v*scale, unit)
