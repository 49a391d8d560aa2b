from menpo.visualize import print_progress as menpo_print_progress


def print_progress(iterable, prefix='', n_items=None, end_with_newline=True,
                   verbose=True):
    r"""
    Wraps an iterable so that a dynamic progress bar with the estimated
    remaining time is printed while it is consumed.

    The report is produced by `menpo.visualize.print_progress`; this wrapper
    only adds the ``verbose`` flag so that training code can pass its own
    verbosity straight through.

    Parameters
    ----------
    iterable : `iterable`
        The iterable to be processed.
    prefix : `str`, optional
        String prepended to the progress report.
    n_items : `int`, optional
        The length of ``iterable``, if it is a generator.
    end_with_newline : `bool`, optional
        If ``False``, the next print overwrites the progress report.
    verbose : `bool`, optional
        Printing is performed only if set to ``True``.
    """
    if verbose:
        for i in menpo_print_progress(iterable, prefix=prefix,
                                      n_items=n_items,
                                      end_with_newline=end_with_newline):
            yield i
    else:
        for i in iterable:
            yield i
