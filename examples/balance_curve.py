# # Balance curve

# Each point of the balance curve is a separate simulation run to steady state
# with a different systemic venous pressure. The points are independent and are
# computed in a pool of worker processes. The operating point is where the curve
# meets a linear venous return curve.

from concurrent.futures import ProcessPoolExecutor

from cardiosim import Simulator, sweep
import matplotlib.pyplot as plt


def main():
    parameters = Simulator.default_parameters()

    curves = {}
    with ProcessPoolExecutor() as executor:
        for Ees in (1.5, 2.5, 3.5):
            parameters["chambers"]["LV"]["Ees"] = Ees
            curves[Ees] = sweep.compute_balance_curve(
                parameters, x_max=20.0, points=25, beats=6, executor=executor
            )

    p_msf, R_VR = 7.0, 1.4
    fig, ax = plt.subplots(figsize=(8, 5))
    for Ees, curve in curves.items():
        ax.plot([p.x for p in curve], [p.y for p in curve], label=f"Ees = {Ees} mmHg/mL")
        point = sweep.equilibrium_point(curve, p_msf, R_VR)
        if point is not None:
            print(f"Ees = {Ees}: operating point at {point.x:.1f} mmHg, {point.y:.2f} L/min")
            ax.plot(point.x, point.y, "ko")

    x = [p.x for p in curves[2.5]]
    ax.plot(x, sweep.venous_return(x, p_msf, R_VR), "k--", label="Venous return")
    ax.set_xlabel("Venous pressure [mmHg]")
    ax.set_ylabel("Cardiac output [L/min]")
    ax.legend()
    plt.show()


if __name__ == "__main__":
    main()
