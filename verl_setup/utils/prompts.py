"""Interactive prompt utilities"""

from .logging import log_prompt, log_error


def prompt_yes_no(prompt, default='y'):
    """
    Interactive yes/no prompt

    Args:
        prompt: Question to ask
        default: Default answer ('y' or 'n')

    Returns:
        bool: True for yes, False for no
    """
    hint = "[Y/n]" if default == 'y' else "[y/N]"
    while True:
        log_prompt(f"{prompt} {hint}: ")
        response = input().strip()
        response = response or default

        if response.lower() in ['y', 'yes']:
            return True
        elif response.lower() in ['n', 'no']:
            return False
        else:
            log_error("Please answer yes or no.")


def prompt_input(prompt, default=None, required=True):
    """
    Interactive input prompt

    Args:
        prompt: Question to ask
        default: Default value
        required: Whether input is required

    Returns:
        str: User input or default
    """
    while True:
        default_text = f" [{default}]" if default else ""
        log_prompt(f"{prompt}{default_text}: ")
        response = input().strip()

        if response:
            return response
        elif default is not None:
            return default
        elif not required:
            return ""
        else:
            log_error("This field is required")


def prompt_port(prompt, default=5000):
    """
    Prompt for a TCP port, re-asking until the answer is valid

    Args:
        prompt: Question to ask
        default: Port used when the answer is empty

    Returns:
        int: Port in the range 1-65535
    """
    while True:
        response = prompt_input(prompt, default=str(default))
        try:
            port = int(response)
        except ValueError:
            log_error("Please enter a valid number")
            continue
        if 1 <= port <= 65535:
            return port
        log_error("Please enter a port between 1 and 65535")
